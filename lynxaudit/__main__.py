import dotenv
import typer

from lynxaudit.commands import file
from lynxaudit.commands import health
from lynxaudit.commands import scan
from lynxaudit.commands import server
from lynxaudit.core.logging import setup_logging

dotenv.load_dotenv()

app = typer.Typer(
    help='lynxaudit: dependency vulnerability scanner for PyPI, npm, Maven, Go and RubyGems.',
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)

app.command('scan')(scan.main)
app.command('file')(file.main)
app.command('server')(server.main)
app.command('health')(health.main)


@app.callback()
def main(
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
):
    """
    lynxaudit CLI - audit your supply chain.
    """
    level = 'DEBUG' if debug else 'WARNING'
    setup_logging(level=level)


if __name__ == '__main__':
    app()
