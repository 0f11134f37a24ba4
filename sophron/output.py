"""Rich console rendering and markdown export for debate sessions."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from sophron.models import (
    SENDER_USER,
    ConversationMode,
    EnrichedAnalysis,
    FallacyFinding,
    ImprovementFinding,
    Message,
    ReferenceRecord,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def describe_mode(mode: ConversationMode) -> str:
    parts = [f"style: {mode.debate_style}"]
    if mode.is_debate_mode:
        parts.append("debate mode")
    if mode.fallacy_detection_enabled:
        parts.append("fallacy detection")
    if mode.steel_manning_enabled:
        parts.append("steel-manning" + (" (strengthening)" if mode.is_in_strengthening_phase else ""))
    return " | ".join(parts)


def print_mode(mode: ConversationMode) -> None:
    console.print(Text(describe_mode(mode), style="dim"))


def print_message(message: Message) -> None:
    if message.is_loading:
        console.print(Text("sophron-bot is thinking...", style="dim italic"))
        return
    if message.sender == SENDER_USER:
        console.print(Text(f"you> {message.text}", style="bold"))
    else:
        console.print(Panel(Markdown(message.text), title="[bold cyan]sophron-bot[/bold cyan]", border_style="cyan"))


def print_fallacies(findings: list[FallacyFinding]) -> None:
    if not findings:
        return
    console.print(Rule("[bold red]Logical Fallacies[/bold red]"))
    for f in findings:
        console.print(
            Panel(
                f"{f.explanation}\n\n[green]Suggestion:[/green] {f.suggestion}",
                title=f"[bold]{f.name}[/bold]",
                subtitle=f.detected_at.strftime("%H:%M:%S"),
                border_style="red",
            )
        )


def print_improvements(findings: list[ImprovementFinding]) -> None:
    if not findings:
        return
    console.print(Rule("[bold green]Strengthen Your Argument[/bold green]"))
    for imp in findings:
        body = f"{imp.suggestion}\n\n[dim]Why:[/dim] {imp.reason}"
        if imp.example:
            body += f"\n\n[dim]Example:[/dim] {imp.example}"
        console.print(Panel(body, title=f"[bold]{imp.category}[/bold]", border_style="green"))


def print_reference(record: ReferenceRecord) -> None:
    lines = [record.definition]
    if record.key_points:
        lines.append("")
        lines += [f"- {p}" for p in record.key_points]
    if record.related_concepts:
        lines.append(f"\n**Related:** {', '.join(record.related_concepts)}")
    if record.related_philosophers:
        lines.append(f"\n**Philosophers:** {', '.join(record.related_philosophers)}")
    if record.further_reading:
        lines.append("\n**Further reading:**")
        lines += [f"- {r}" for r in record.further_reading]
    subtitle = record.source_kind + (f" | {record.source_url}" if record.source_url else "")
    console.print(
        Panel(
            Markdown("\n".join(lines)),
            title=f"[bold]{record.title}[/bold]",
            subtitle=subtitle,
            border_style="blue",
        )
    )


def print_topics(topics: tuple[str, ...] | list[str]) -> None:
    console.print(Rule("[bold]Topics[/bold]"))
    for i, topic in enumerate(topics, 1):
        console.print(f"  [cyan]{i}.[/cyan] {topic}")
    console.print("[dim]Pick one with /topics <number>.[/dim]")


def print_enriched_analysis(enriched: EnrichedAnalysis) -> None:
    """Render recently discussed topics, then a reference panel for each."""
    if not enriched.recently_discussed:
        console.print("[dim]No philosophical topics found in this conversation yet.[/dim]")
        return
    console.print(Rule("[bold blue]Recently Discussed[/bold blue]"))
    for topic in enriched.recently_discussed:
        console.print(f"  {topic.name} [dim]({topic.kind}, {topic.mentions}x)[/dim]")
    for title, records in (
        ("Concepts", enriched.concepts),
        ("Philosophers", enriched.philosophers),
        ("Schools of Thought", enriched.schools),
        ("Fallacies", enriched.fallacies),
    ):
        if not records:
            continue
        console.print(Rule(f"[bold]{title}[/bold]"))
        for record in records.values():
            print_reference(record)


def save_transcript(
    transcript: list[Message],
    fallacies: list[FallacyFinding],
    improvements: list[ImprovementFinding],
    mode: ConversationMode,
    output_dir: Path,
) -> Path:
    """Save the session as a markdown file and return its path.

    The filename is derived from the first user message, if any.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    first_claim = next((m.text for m in transcript if m.sender == SENDER_USER), "session")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(first_claim) or 'session'}.md"

    lines: list[str] = [
        f"# sophron-bot Debate: {first_claim[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {describe_mode(mode)}",
        "",
        "---",
        "",
        "## Transcript",
        "",
    ]
    for msg in transcript:
        if msg.is_loading:
            continue
        speaker = "You" if msg.sender == SENDER_USER else "sophron-bot"
        lines += [f"**{speaker}:** {msg.text}", ""]

    if fallacies:
        lines += ["## Logical Fallacies", ""]
        for f in fallacies:
            lines += [f"### {f.name}", "", f.explanation, "", f"*Suggestion:* {f.suggestion}", ""]

    if improvements:
        lines += ["## Suggested Improvements", ""]
        for imp in improvements:
            lines += [f"### {imp.category}", "", imp.suggestion, "", f"*Why:* {imp.reason}", ""]
            if imp.example:
                lines += [f"*Example:* {imp.example}", ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Session saved to: %s", filepath)
    return filepath
