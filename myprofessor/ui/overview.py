"""A Rich-powered console overview of stored folders and documents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..services.storage import Document, Folder, MetadataStore, ProcessingStatus


ASSET_LABELS: Dict[str, str] = {
    "audio": "🎧 Audio",
    "transcription": "📝 Transcription",
    "summary": "🗒️ Summary",
    "pdf": "📄 PDF",
}

STATUS_STYLES: Dict[str, str] = {
    ProcessingStatus.PENDING.value: "yellow",
    ProcessingStatus.PROCESSING.value: "cyan",
    ProcessingStatus.COMPLETED.value: "green",
    ProcessingStatus.FAILED.value: "red",
}


@dataclass
class DocumentOverview:
    record: Document
    assets: List[str]


@dataclass
class FolderOverview:
    record: Folder
    documents: List[DocumentOverview]


@dataclass
class OverviewSnapshot:
    folders: List[FolderOverview]
    folder_count: int
    document_count: int
    status_totals: Dict[str, int]
    asset_totals: Dict[str, int]


def collect_overview(store: MetadataStore) -> OverviewSnapshot:
    """Aggregate store data into a convenient snapshot for the console."""

    folders: List[FolderOverview] = []
    document_count = 0
    status_totals = {status.value: 0 for status in ProcessingStatus}
    asset_totals = {key: 0 for key in ASSET_LABELS}

    for folder in sorted(store.list_folders(), key=lambda item: (item.created_at, item.name)):
        documents: List[DocumentOverview] = []
        for document in sorted(
            store.list_documents_by_folder(folder.id), key=lambda item: item.created_at
        ):
            document_count += 1
            status_totals[document.processing_status] = (
                status_totals.get(document.processing_status, 0) + 1
            )
            assets = _extract_assets(document, asset_totals)
            documents.append(DocumentOverview(record=document, assets=assets))
        folders.append(FolderOverview(record=folder, documents=documents))

    return OverviewSnapshot(
        folders=folders,
        folder_count=len(folders),
        document_count=document_count,
        status_totals=status_totals,
        asset_totals=asset_totals,
    )


def _extract_assets(document: Document, asset_totals: Dict[str, int]) -> List[str]:
    assets: List[str] = []

    if document.audio_path:
        assets.append(ASSET_LABELS["audio"])
        asset_totals["audio"] += 1
    if document.transcription.strip():
        assets.append(ASSET_LABELS["transcription"])
        asset_totals["transcription"] += 1
    if document.summary.strip():
        assets.append(ASSET_LABELS["summary"])
        asset_totals["summary"] += 1
    if document.pdf_path:
        assets.append(ASSET_LABELS["pdf"])
        asset_totals["pdf"] += 1

    return assets


class OverviewUI:
    """Render the folder/document tree and a statistics panel."""

    def __init__(self, store: MetadataStore, *, console: Optional[Console] = None) -> None:
        self._store = store
        self._console = console or Console()

    def run(self) -> None:
        snapshot = collect_overview(self._store)
        console = self._console

        console.rule("[bold magenta]myProfessor Overview")

        if snapshot.folder_count == 0:
            console.print(
                Panel(
                    "No folders have been created yet.\n"
                    "Start the server with [bold]python run.py serve[/bold] and upload a lecture.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        tree_panel = Panel(
            self._build_tree(snapshot.folders),
            title="Folders",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([tree_panel, self._build_stats_panel(snapshot)], expand=True))

    def _build_tree(self, folders: Iterable[FolderOverview]) -> Tree:
        tree = Tree("[bold cyan]Folders", guide_style="cyan")
        for folder_overview in folders:
            folder_node = tree.add(Text(folder_overview.record.name, style="bold"))
            if not folder_overview.documents:
                folder_node.add("[dim]No documents yet")
                continue
            for document_overview in folder_overview.documents:
                folder_node.add(self._build_document_label(document_overview))
        return tree

    @staticmethod
    def _build_document_label(overview: DocumentOverview) -> Text:
        record = overview.record
        label = Text(record.title or record.id, style="white")
        label.append("  ")
        label.append(
            record.processing_status,
            style=STATUS_STYLES.get(record.processing_status, "dim"),
        )
        label.append("  ")
        if overview.assets:
            label.append(" · ".join(overview.assets), style="green")
        else:
            label.append("No assets yet", style="dim")
        if record.processing_error:
            label.append("\n")
            label.append(record.processing_error, style="red dim")
        return label

    @staticmethod
    def _build_stats_panel(snapshot: OverviewSnapshot) -> Panel:
        metrics = Table.grid(expand=True, padding=(0, 1))
        metrics.add_column(style="dim")
        metrics.add_column(justify="right", style="bold")
        metrics.add_row("Folders", str(snapshot.folder_count))
        metrics.add_row("Documents", str(snapshot.document_count))

        statuses = Table.grid(expand=True, padding=(0, 1))
        statuses.add_column(style="dim")
        statuses.add_column(justify="right", style="bold")
        for status, count in snapshot.status_totals.items():
            statuses.add_row(Text(status, style=STATUS_STYLES.get(status, "dim")), str(count))

        assets = Table.grid(expand=True, padding=(0, 1))
        assets.add_column(style="dim")
        assets.add_column(justify="right", style="bold")
        for key, label in ASSET_LABELS.items():
            assets.add_row(label, str(snapshot.asset_totals.get(key, 0)))

        body = Group(metrics, Rule(style="magenta"), statuses, Rule(style="magenta"), assets)
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)


__all__ = [
    "ASSET_LABELS",
    "DocumentOverview",
    "FolderOverview",
    "OverviewSnapshot",
    "OverviewUI",
    "collect_overview",
]
