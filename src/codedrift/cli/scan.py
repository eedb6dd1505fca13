"""drift scan command - register the code links in a markdown document."""

from pathlib import Path

import click

from codedrift.cli.utils import console, echo_json, run_with_context
from codedrift.daemon.context import AppContext
from codedrift.store.models import DocumentCitation


@click.command()
@click.argument("doc_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--document-id", help="Identifier stored on each citation (default: the file path)")
@click.option("--ref", help="Commit or branch to resolve links against")
@click.option("--render", is_flag=True, help="Print the document with links replaced by snippets")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def scan_command(
    ctx: click.Context,
    doc_file: Path,
    document_id: str | None,
    ref: str | None,
    render: bool,
    as_json: bool,
) -> None:
    """Track every github://OWNER/REPO/PATH link in DOC_FILE.

    Each link becomes a tracked code reference whose lines follow the code
    as it moves.
    """
    markdown = doc_file.read_text(encoding="utf-8")
    doc_id = document_id or str(doc_file)

    async def action(app_ctx: AppContext) -> tuple[list[DocumentCitation], str | None]:
        citations = await app_ctx.tracker.scan_document(doc_id, markdown, ref)
        rendered = app_ctx.tracker.render_document(doc_id, markdown) if render else None
        return citations, rendered

    citations, rendered = run_with_context(ctx, action)
    if as_json:
        echo_json(
            {
                "document_id": doc_id,
                "citations": [c.model_dump(mode="json") for c in citations],
                "rendered": rendered,
            }
        )
        return
    if rendered is not None:
        click.echo(rendered)
        return
    console.print(f"Tracked {len(citations)} citation(s) in {doc_id}", highlight=False)
    for citation in citations:
        console.print(f"  {citation.placeholder_text}", highlight=False)
