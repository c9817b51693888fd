"""Entry-point for the myProfessor service."""

from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from myprofessor.bootstrap import Bootstrapper, Services, initialize_app
from myprofessor.config import AppConfig
from myprofessor.errors import MyProfessorError
from myprofessor.logging_utils import build_handlers, configure_logging
from myprofessor.ui.overview import OverviewUI
from myprofessor.web import create_app


LOGGER = logging.getLogger("myprofessor.cli")


cli = typer.Typer(add_completion=False, help="myProfessor management commands")


DEFAULT_HOST = "0.0.0.0"


def _prepare_logging(data_dir: Path) -> None:
    configure_logging(handlers=build_handlers(data_dir))


def _build_services(config: AppConfig) -> Services:
    transcription_engine = None
    summarizer = None
    if config.openai_api_key:
        from myprofessor.processing import OpenAISummarizer, OpenAITranscription

        transcription_engine = OpenAITranscription(
            config.openai_api_key, model=config.openai_model_transcribe
        )
        summarizer = OpenAISummarizer(config.openai_api_key, model=config.openai_model_summary)
    else:
        LOGGER.info("OPENAI_API_KEY not set; uploads will be stored without processing")

    return Bootstrapper(config).build_services(
        transcription_engine=transcription_engine,
        summarizer=summarizer,
    )


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=None)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: Optional[int] = typer.Option(None, help="Port for the web server (defaults to PORT)"),
) -> None:
    """Run the HTTP API."""

    app_config = initialize_app()
    _prepare_logging(app_config.data_dir)

    services = _build_services(app_config)
    app = create_app(
        services.store,
        services.media,
        services.share,
        config=app_config,
        ingestor=services.ingestor,
    )

    config_kwargs = {}
    if app_config.max_upload_bytes > 0:
        config_signature = inspect.signature(uvicorn.Config.__init__)
        if "limit_max_request_size" in config_signature.parameters:
            config_kwargs["limit_max_request_size"] = app_config.max_upload_bytes
        else:
            LOGGER.warning(
                "Ignoring max upload size limit; uvicorn.Config does not support "
                "'limit_max_request_size'.",
            )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port or app_config.port,
        log_config=None,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server

    LOGGER.info("Serving on %s:%s (base URL %s)", host, port or app_config.port, app_config.base_url)
    server.run()


@cli.command()
def overview() -> None:
    """Render an overview of stored folders and documents."""

    config = initialize_app()
    _prepare_logging(config.data_dir)

    services = Bootstrapper(config).build_services()
    OverviewUI(services.store).run()


@cli.command()
def compress(
    audio: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Path to the audio file to compress.",
    ),
) -> None:
    """Run the compression ladder on *audio* and print the resulting path."""

    config = initialize_app()
    _prepare_logging(config.data_dir)

    services = Bootstrapper(config).build_services()
    typer.echo(f"Compressing audio: {audio}")
    try:
        output = services.media.compress(audio)
    except MyProfessorError as error:
        typer.echo(f"Compression failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Compressed audio saved to: {output} ({output.stat().st_size} bytes)")


@cli.command()
def share(document_id: str = typer.Argument(..., help="Identifier of the document to share.")) -> None:
    """Print a signed, expiring download link for a document's PDF."""

    config = initialize_app()
    _prepare_logging(config.data_dir)

    services = Bootstrapper(config).build_services()
    try:
        document = services.store.get_document(document_id)
    except MyProfessorError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error

    if not document.pdf_path:
        typer.echo(f"Document {document_id} has no PDF yet.")
        raise typer.Exit(code=1)

    link = services.share.issue(document_id)
    typer.echo(link.url)


if __name__ == "__main__":
    cli()
