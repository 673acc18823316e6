"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from marginalia.annotations.lifecycle import AnnotationLifecycle
from marginalia.editor.editor_widget import EditorWidget
from marginalia.ui.domain.annotation_store import AnnotationStore
from marginalia.ui.events import Event, EventBus
from tests.helpers import ManualScheduler


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "marginalia-home"
    monkeypatch.setenv("MARGINALIA_HOME", str(home))
    monkeypatch.setenv("MARGINALIA_LOG_DIR", str(home / "logs"))
    for name in ("MARGINALIA_API_KEY", "MARGINALIA_MODEL", "MARGINALIA_BASE_URL", "MARGINALIA_DEBUG_LOGGING", "MARGINALIA_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(event_bus: EventBus) -> list[Event]:
    """Every event published on ``event_bus``, in order."""

    from marginalia.ui import events

    seen: list[Event] = []
    for name in events.__all__:
        candidate = getattr(events, name)
        if isinstance(candidate, type) and issubclass(candidate, Event) and candidate is not Event:
            event_bus.subscribe(candidate, seen.append)
    return seen


@pytest.fixture
def editor() -> EditorWidget:
    return EditorWidget()


@pytest.fixture
def store() -> AnnotationStore:
    return AnnotationStore()


@pytest.fixture
def lifecycle(
    editor: EditorWidget, store: AnnotationStore, event_bus: EventBus, scheduler: ManualScheduler
) -> AnnotationLifecycle:
    return AnnotationLifecycle(editor, store, event_bus, scheduler=scheduler)
