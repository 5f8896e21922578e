from __future__ import annotations

from typing import Any, Mapping

from .importer import ImportResult


def _preview(values: tuple[str, ...], *, limit: int) -> list[str]:
    shown = [v if v else "<empty>" for v in values[: max(0, int(limit))]]
    if len(values) > len(shown):
        shown.append("...")
    return shown


def build_import_report(result: ImportResult, *, preview_limit: int = 10) -> dict[str, Any]:
    if result.loaded == 0:
        status = "empty"
    elif result.batches_failed > 0:
        status = "completed_with_failures"
    else:
        status = "completed"

    details: dict[str, Any] = {
        "loaded": int(result.loaded),
        "validated": int(result.validated),
        "inserted": int(result.inserted),
        "skipped": int(result.skipped),
        "skipped_unknown_author": int(result.skipped_unknown_author),
        "skipped_invalid": int(result.skipped_invalid),
        "unknown_authors": int(len(result.unknown_authors)),
        "batches_total": int(result.batches_total),
        "batches_failed": int(result.batches_failed),
        "dead_letter_files": [str(p) for p in result.dead_letter_files],
    }

    recommendations: list[str] = []

    if status == "empty":
        summary = "No posts to import."
    else:
        summary = f"Import complete. Inserted: {result.inserted}, Skipped: {result.skipped}"
        if result.batches_failed:
            summary += (
                f", Failed batches: {result.batches_failed}"
                f" ({result.validated - result.inserted} rows dead-lettered)"
            )
        summary += "."

    if result.skipped_unknown_author:
        recommendations.append(
            "Create the missing users before re-running; posts are only imported for existing usernames."
        )
    if result.skipped_invalid:
        recommendations.append("Fix records with blank titles in the input file.")
    if result.dead_letter_files:
        recommendations.append(
            "Re-submit the dead-letter files with `retry-failed` once the backend is healthy."
        )
    if result.batches_failed > len(result.dead_letter_files):
        recommendations.append(
            "Some failed batches could not be written to disk; recover their rows from the "
            "dead_letter_write_failed events in import.log."
        )

    return {
        "status": status,
        "summary": summary,
        "details": details,
        "unknown_authors_preview": _preview(result.unknown_authors, limit=preview_limit),
        "recommendations": recommendations,
    }


def format_import_report(report: Mapping[str, Any]) -> str:
    status = str(report.get("status") or "").strip() or "unknown"
    summary = str(report.get("summary") or "").strip() or f"Import stopped ({status})."

    lines: list[str] = [summary]

    details = report.get("details")
    if isinstance(details, Mapping):
        unknown = int(details.get("unknown_authors") or 0)
        skipped = int(details.get("skipped_unknown_author") or 0)
        preview = report.get("unknown_authors_preview")
        if unknown and isinstance(preview, list):
            lines.append(
                f"Skipped {skipped} posts ({unknown} unknown authors): "
                + ", ".join(str(a) for a in preview)
            )
        files = details.get("dead_letter_files")
        if isinstance(files, list) and files:
            lines.append("Dead-letter files:")
            for f in files:
                lines.append(f"- {f}")

    recs = report.get("recommendations")
    if isinstance(recs, list) and recs:
        lines.append("Recommendations:")
        for r in recs:
            t = str(r or "").strip()
            if t:
                lines.append(f"- {t}")

    return "\n".join(lines)
