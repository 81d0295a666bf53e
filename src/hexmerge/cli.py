# Copyright (c) 2013-2025, Andrea Zoppi
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright
#    notice, this list of conditions and the following disclaimer in the
#    documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

"""
Module that contains the command line app.

Why does this file exist, and why not put this in __main__?

  You might be tempted to import things from __main__ later, but that will cause
  problems: the code will get executed twice:

  - When you run `python -m hexmerge` python will execute
    ``__main__.py`` as a script. That means there won't be any
    ``hexmerge.__main__`` in ``sys.modules``.
  - When you import __main__ it will get executed again (as a module) because
    there's no ``hexmerge.__main__`` in ``sys.modules``.

  Also see (1) from https://click.palletsprojects.com/en/stable/setuptools/#setuptools-integration
"""

import logging
from typing import IO

import click

from .__init__ import __version__
from .merge import merge_stream

LOGGER_NAME = 'hexmerge'

LOG_FORMAT = '%(levelname)s: %(message)s'


class MergeCommand(click.Command):

    def parse_args(self, ctx, args):

        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


class ClickEchoHandler(logging.Handler):

    def emit(self, record):
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


FILE_PATH_IN = click.Path(dir_okay=False, allow_dash=True)
FILE_PATH_OUT = click.Path(dir_okay=False, allow_dash=True)


# ----------------------------------------------------------------------------

def print_version(ctx, _, value):

    if not value or ctx.resilient_parsing:
        return

    click.echo(str(__version__))
    ctx.exit()


def setup_logging(level: int) -> logging.Logger:
    r"""Routes the package diagnostics to the standard error.

    Any handler previously installed by this function is replaced, and the
    records are not propagated to the root logger.

    Args:
        level (int):
            Logging level threshold.

    Returns:
        :class:`logging.Logger`: The package logger.
    """

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, ClickEchoHandler):
            logger.removeHandler(handler)

    handler = ClickEchoHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def open_stream(path: str, mode: str) -> IO[bytes]:

    try:
        return click.open_file(path, mode)
    except OSError as exc:
        raise click.FileError(path, hint=(exc.strerror or str(exc))) from None


# ============================================================================

@click.command(cls=MergeCommand)
@click.option('--version', is_flag=True, is_eager=True,
              expose_value=False, callback=print_version, help="""
    Prints the package version number.
""")
@click.option('-v', '--verbose', is_flag=True, help="""
    Also reports segment statistics and address remapping.
""")
@click.option('-q', '--quiet', is_flag=True, help="""
    Suppresses warnings.
""")
@click.argument('infile', type=FILE_PATH_IN)
@click.argument('outfile', type=FILE_PATH_OUT)
def main(
    verbose: bool,
    quiet: bool,
    infile: str,
    outfile: str,
) -> None:
    r"""Merges Intel HEX segments by Extended Linear Address.

    Data records are grouped by the Extended Linear Address record they fall
    under, segments at ``0x8000xxxx-0x8FFFxxxx`` are moved to
    ``0xA000xxxx-0xAFFFxxxx``, and each segment is sorted by address.
    Lines which cannot be parsed are copied first, unchanged.

    ``INFILE`` is the path of the input file.
    Set to ``-`` to read from standard input.

    ``OUTFILE`` is the path of the output file.
    Set to ``-`` to write to standard output.
    """

    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    setup_logging(level)

    with open_stream(infile, 'rb') as stream_in:
        with open_stream(outfile, 'wb') as stream_out:
            merge_stream(stream_in, stream_out)
