"""Typed artifact map shared by the tasks of one job."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from blueprint_orchestrator.intelligence.models import RunPlan, Section


class Blackboard:
    """Mapping from ``Section`` to generated text, validated at insertion.

    A section is written once per task. Later writes must pass
    ``overwrite=True`` (revision loop and manual retries).
    """

    def __init__(self, initial: Mapping[Section | str, str] | None = None) -> None:
        self._entries: dict[Section, str] = {}
        for key, value in (initial or {}).items():
            self.put(key, value)

    def put(self, section: Section | str, text: str, *, overwrite: bool = False) -> None:
        key = _coerce_section(section)
        if not isinstance(text, str):
            raise TypeError(f"Artifact for '{key.value}' must be text, got {type(text).__name__}")
        if key in self._entries and not overwrite:
            raise ValueError(f"Artifact '{key.value}' is already committed")
        self._entries[key] = text

    def get(self, section: Section | str, default: str | None = None) -> str | None:
        return self._entries.get(_coerce_section(section), default)

    def __getitem__(self, section: Section | str) -> str:
        return self._entries[_coerce_section(section)]

    def __contains__(self, section: object) -> bool:
        try:
            return _coerce_section(section) in self._entries  # type: ignore[arg-type]
        except ValueError:
            return False

    def __iter__(self) -> Iterator[Section]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def copy(self) -> Blackboard:
        return Blackboard(self._entries)

    def as_text_map(self) -> dict[str, str]:
        """Plain ``{section name: text}`` view used by the heuristic tools."""
        return {section.value: text for section, text in self._entries.items()}

    def assemble(self, plan: RunPlan) -> str:
        parts: list[str] = []
        for task in plan.tasks:
            text = self._entries.get(task.section)
            if text:
                parts.append(f"# {task.section.value}\n\n{text}\n\n")
        return "".join(parts)


def _coerce_section(section: Section | str) -> Section:
    if isinstance(section, Section):
        return section
    try:
        return Section(section)
    except ValueError as exc:
        raise ValueError(f"Unknown section: {section!r}") from exc
