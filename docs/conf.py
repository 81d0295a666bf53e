# -*- coding: utf-8 -*-
import os


def read_version():
    path = os.path.join('..', 'src', 'hexmerge', '__init__.py')
    with open(path, 'rt') as file:
        for line in file:
            if line.startswith('__version__'):
                return eval(line.split('=')[1])
    raise ValueError(f'cannot find __version__ inside of {path}')


extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx_click.ext',
]

source_suffix = '.rst'
master_doc = 'index'
project = 'hexmerge'
year = '2013-2025'
author = 'Andrea Zoppi'
copyright = f'{year}, {author}'
version = release = read_version()

pygments_style = 'trac'

html_theme = 'furo'

html_last_updated_fmt = '%Y-%m-%d'
html_split_index = False
html_short_title = f'{project}-{version}'

toc_object_entries_show_parents = 'hide'

napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = False
napoleon_use_ivar = True
napoleon_use_rtype = False
napoleon_use_param = True
napoleon_include_private_with_doc = True
napoleon_include_special_with_doc = True
