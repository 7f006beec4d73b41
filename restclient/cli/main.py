"""
Main CLI entry point for the REST client.

This module provides the command-line interface for the client,
allowing users to send requests and upload files from a terminal.
"""

import asyncio
import sys
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from restclient.clients.http1 import HttpRequestHandler
from restclient.clients.rest import DEFAULT_ACCEPT, RestClient
from restclient.errors import RestClientError, TransportError
from restclient.http.multipart import HttpFile
from restclient.http.parameters import ParameterMap
from restclient.http.request import HttpDelete, HttpGet, HttpHead, HttpPost, HttpPut, HttpRequest
from restclient.http.response import HttpResponse
from restclient.utils.logging import ConsoleRequestLogger, get_logger, setup_logging

console = Console()

VERBS = {
    'GET': HttpGet,
    'HEAD': HttpHead,
    'DELETE': HttpDelete,
    'POST': HttpPost,
    'PUT': HttpPut,
}

MAX_PRINTED_BODY = 4096


@click.group()
@click.version_option(package_name='basic-rest-client')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--log-file', help='Log file path')
def cli(debug: bool, log_file: Optional[str]):
    """Basic REST client.

    Send HTTP requests and upload files from the command line.
    """
    log_level = 10 if debug else 20  # DEBUG=10, INFO=20
    setup_logging(level=log_level, log_file=log_file, verbose=debug)


def _parse_parameters(values: Tuple[str, ...]) -> ParameterMap:
    """Parse key=value options into a ParameterMap, keeping their order."""
    params = ParameterMap()
    for item in values:
        if '=' not in item:
            raise click.BadParameter(f"Expected key=value, got {item!r}", param_hint='--data')
        key, value = item.split('=', 1)
        params.add(key, value)
    return params


def _parse_headers(values: Tuple[str, ...]) -> List[Tuple[str, str]]:
    headers = []
    for h in values:
        if ':' in h:
            name, value = h.split(':', 1)
            headers.append((name.strip(), value.strip()))
        else:
            console.print(f"[bold yellow]Warning:[/] Ignoring invalid header format: {h}")
    return headers


def _build_request(
    method: str,
    url: str,
    params: ParameterMap,
    body: Optional[str],
    content_type: Optional[str],
    accept: Optional[str],
) -> HttpRequest:
    request_type = VERBS[method]
    if method in ('POST', 'PUT'):
        if body is not None:
            return request_type(
                url,
                accept=accept,
                content_type=content_type or 'text/plain; charset=UTF-8',
                body=body.encode('utf-8'),
            )
        return request_type(url, params if not params.is_empty() else None, accept=accept)

    if body is not None:
        raise click.UsageError(f"{method} requests cannot carry a body")
    return request_type(url, params, accept=accept)


def _create_client(
    headers: List[Tuple[str, str]],
    user: Optional[str],
    password: Optional[str],
    timeout: float,
    connect_timeout: float,
    accept: str,
    verify_ssl: bool,
    certificate: Optional[str],
) -> RestClient:
    handler = HttpRequestHandler(verify_ssl=verify_ssl, certificate_file=certificate)
    client = RestClient(
        handler=handler,
        logger=ConsoleRequestLogger(enabled=True),
        connection_timeout=connect_timeout,
        read_write_timeout=timeout,
        accept=accept,
    )
    if user is not None:
        client.basic_auth(user, password or '')
    for name, value in headers:
        client.headers[name] = value
    return client


def _print_response(response: HttpResponse, verbose: bool, output: Optional[str]) -> None:
    color = 'green' if response.ok else 'red'
    console.print(f"[bold {color}]Status:[/] {response.status}")
    console.print(f"[bold green]Response time:[/] {response.elapsed:.0f} ms")

    if verbose:
        console.print("\n[bold green]Response headers:[/]")
        for name, value in response.headers:
            console.print(f"  [blue]{escape(name)}:[/] {escape(value)}")

    body = response.body or b''
    if verbose:
        console.print("\n[bold green]Response body:[/]")
        text = response.text
        if len(text) > MAX_PRINTED_BODY:
            console.print(text[:MAX_PRINTED_BODY], markup=False)
            console.print("[dim]... (truncated)[/]")
        else:
            console.print(text, markup=False)
    else:
        console.print(f"\n[bold green]Response body:[/] {len(body)} bytes")

    if output:
        try:
            with open(output, 'wb') as f:
                f.write(body)
            console.print(f"[bold green]Response saved to:[/] {output}")
        except OSError as e:
            console.print(f"[bold red]Error saving response to file:[/] {e}")


def _report_failure(error: RestClientError) -> None:
    console.print(f"[bold red]Error:[/] {escape(str(error))}")
    if isinstance(error, TransportError) and error.response is not None:
        console.print(f"[bold red]Status:[/] {error.response.status}")
    sys.exit(1)


@cli.command()
@click.argument('url')
@click.option('--method', '-m', default='GET',
              type=click.Choice(list(VERBS), case_sensitive=False), help='HTTP method to use')
@click.option('--header', '-H', multiple=True, help='HTTP header (can be used multiple times)')
@click.option('--data', '-d', multiple=True, help='Request parameter as key=value (can be used multiple times)')
@click.option('--body', '-b', help='Raw request body for POST/PUT')
@click.option('--content-type', help='Content type of the raw body')
@click.option('--accept', '-a', default=DEFAULT_ACCEPT, show_default=True, help='Accept header')
@click.option('--user', '-u', help='Basic authentication user name')
@click.option('--password', '-p', help='Basic authentication password')
@click.option('--timeout', '-t', default=8.0, help='Read/write timeout in seconds')
@click.option('--connect-timeout', '-c', default=2.0, help='Connection timeout in seconds')
@click.option('--async', 'use_async', is_flag=True, help='Send the request with asyncio')
@click.option('--output', '-o', help='Output file for response')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--verify-ssl', is_flag=True, help='Verify SSL certificates')
@click.option('--certificate', type=click.Path(exists=True, dir_okay=False),
              help='Certificate the server must present')
def request(
    url: str,
    method: str,
    header: Tuple[str, ...],
    data: Tuple[str, ...],
    body: Optional[str],
    content_type: Optional[str],
    accept: str,
    user: Optional[str],
    password: Optional[str],
    timeout: float,
    connect_timeout: float,
    use_async: bool,
    output: Optional[str],
    verbose: bool,
    verify_ssl: bool,
    certificate: Optional[str],
):
    """Send a request to a REST endpoint.

    URL should be in the format http(s)://hostname[:port]/path
    """
    logger = get_logger()
    method = method.upper()
    params = _parse_parameters(data)
    http_request = _build_request(method, url, params, body, content_type, None)

    client = _create_client(
        _parse_headers(header), user, password, timeout, connect_timeout,
        accept, verify_ssl, certificate,
    )
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Sending {method} request...", total=None)
            logger.info(f"Sending {method} request to {url}")
            if use_async:
                response = asyncio.run(client.execute_async(http_request))
            else:
                response = client.execute(http_request)
    except RestClientError as e:
        _report_failure(e)
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Request cancelled by user[/]")
        sys.exit(130)
    finally:
        client.close()

    _print_response(response, verbose, output)


@cli.command()
@click.argument('url')
@click.option('--file', '-f', 'files', multiple=True, required=True,
              type=click.Path(exists=True, dir_okay=False), help='File to upload (can be used multiple times)')
@click.option('--data', '-d', multiple=True, help='Form field as key=value (can be used multiple times)')
@click.option('--header', '-H', multiple=True, help='HTTP header (can be used multiple times)')
@click.option('--accept', '-a', default=DEFAULT_ACCEPT, show_default=True, help='Accept header')
@click.option('--user', '-u', help='Basic authentication user name')
@click.option('--password', '-p', help='Basic authentication password')
@click.option('--timeout', '-t', default=8.0, help='Read/write timeout in seconds')
@click.option('--connect-timeout', '-c', default=2.0, help='Connection timeout in seconds')
@click.option('--async', 'use_async', is_flag=True, help='Upload with asyncio')
@click.option('--output', '-o', help='Output file for response')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--verify-ssl', is_flag=True, help='Verify SSL certificates')
def upload(
    url: str,
    files: Tuple[str, ...],
    data: Tuple[str, ...],
    header: Tuple[str, ...],
    accept: str,
    user: Optional[str],
    password: Optional[str],
    timeout: float,
    connect_timeout: float,
    use_async: bool,
    output: Optional[str],
    verbose: bool,
    verify_ssl: bool,
):
    """Upload files as multipart/form-data.

    Files are sent as fields file0, file1, ... in the order given.
    """
    logger = get_logger()
    params = _parse_parameters(data)

    client = _create_client(
        _parse_headers(header), user, password, timeout, connect_timeout,
        accept, verify_ssl, None,
    )
    try:
        uploads = [HttpFile.open(path) for path in files]
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Uploading {len(uploads)} file(s)...", total=None)
            logger.info(f"Uploading {', '.join(files)} to {url}")
            if use_async:
                response = asyncio.run(client.post_files_async(url, uploads, params))
            else:
                response = client.post_files(url, uploads, params)
    except RestClientError as e:
        _report_failure(e)
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Upload cancelled by user[/]")
        sys.exit(130)
    finally:
        client.close()

    _print_response(response, verbose, output)


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except Exception as e:
        console.print(f"[bold red]Unexpected error:[/] {e}")
        get_logger().exception("Unhandled exception in main")
        sys.exit(1)


if __name__ == '__main__':
    main()
