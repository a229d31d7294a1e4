"""
User-facing diagnostics.
"""
import click


class Console:
    """
    Prints one-line messages the way every dbox command reports progress:
    information on stdout, warnings and errors on stderr.
    """
    def __init__(self, verbose: bool = False):
        """
        :param verbose: Whether debug lines are shown.
        """
        self.verbose = verbose

    def info(self, message: str):
        click.echo(message)

    def debug(self, message: str):
        if self.verbose:
            click.echo(f"+ {message}", err=True)

    def warn(self, message: str):
        click.echo(f"Warning: {message}", err=True)

    def error(self, message: str):
        click.echo(f"Error: {message}", err=True)

    def signal(self, line: str):
        """Writes a raw line to stdout and flushes it immediately."""
        click.echo(line)
        click.get_text_stream("stdout").flush()
