import structlog
import typer
import uvicorn

from lynxaudit.core.container import get_container
from lynxaudit.core.decorators import handle_errors
from lynxaudit.core.logging import err_console

logger = structlog.get_logger('server_command')


@handle_errors
def main(
    port: int | None = typer.Option(None, '--port', '-p', help='HTTP port (default: PORT or 8080)'),
    https_port: int | None = typer.Option(None, '--https-port', help='HTTPS port (default: HTTPS_PORT or 8443)'),
    https: bool = typer.Option(False, '--https', help='Serve HTTPS using certs/server.key and certs/server.crt'),
    host: str | None = typer.Option(None, '--host', help='Bind address (default: HOST or 0.0.0.0)'),
):
    """
    Start the lynxaudit HTTP API server.
    """
    from lynxaudit.api.app import create_app

    container = get_container()
    server_config = container.config.server
    host = host or server_config.host
    ssl_kwargs = {}

    if https or server_config.enable_https:
        if server_config.key_path.exists() and server_config.cert_path.exists():
            listen_port = https_port or server_config.https_port
            ssl_kwargs = {
                'ssl_keyfile': str(server_config.key_path),
                'ssl_certfile': str(server_config.cert_path),
            }
        else:
            err_console.print(
                f"[yellow]Warning:[/] certificates not found in {server_config.certs_dir}, "
                'falling back to HTTP',
            )
            listen_port = port or server_config.port
    else:
        listen_port = port or server_config.port

    scheme = 'https' if ssl_kwargs else 'http'
    err_console.print(f"[bold green]lynxaudit server[/] listening on {scheme}://{host}:{listen_port}")
    logger.info('Starting server', host=host, port=listen_port, https=bool(ssl_kwargs))
    uvicorn.run(
        create_app(container),
        host=host,
        port=listen_port,
        log_level=container.config.log_level.lower(),
        **ssl_kwargs,
    )
