"""Tests for the CLI commands against a local backend."""

from pathlib import Path

import pytest

from entity_links import annotation_commands, cli, config_commands, link_commands, stage_commands
from entity_links.backends import LocalBackend, SupabaseBackend
from entity_links.config import get_config
from entity_links.models import EntityType


@pytest.fixture(autouse=True)
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every command in a temporary project with a local backend."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("ENTITY_LINKS_USER", "ada")
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    # get_backend applies settings to module state; restore it afterwards.
    monkeypatch.setattr("entity_links.validation._warn_uncommon", False)
    monkeypatch.setattr("entity_links.observability._slow_query_ms", 100.0)
    cli.configure_logging("critical")
    return tmp_path


def test_get_backend_defaults_to_local(workspace: Path) -> None:
    """Test the local backend is used when nothing is configured."""
    backend = cli.get_backend()
    assert isinstance(backend, LocalBackend)
    assert backend.path == Path(".entity-links/data.yaml")


def test_get_backend_supabase_requires_credentials() -> None:
    """Test a Supabase backend without url or key is refused."""
    get_config().set("backend", "supabase")
    with pytest.raises(ValueError, match="Supabase url and key not configured"):
        cli.get_backend()


def test_get_backend_supabase(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test Supabase credentials are read from the environment."""
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "service-key")
    created = {}
    monkeypatch.setattr(
        "entity_links.backends.supabase.create_client",
        lambda url, key: created.setdefault("client", (url, key)),
    )
    get_config().set("backend", "supabase")

    backend = cli.get_backend()

    assert isinstance(backend, SupabaseBackend)
    assert created["client"] == ("https://example.supabase.co", "service-key")


def test_get_backend_unknown() -> None:
    """Test an unknown backend name is refused."""
    get_config().set("backend", "sqlite")
    with pytest.raises(ValueError, match="Unknown backend: sqlite"):
        cli.get_backend()


def test_parse_ref() -> None:
    """Test entity references are parsed from type:id."""
    ref = cli.parse_ref("assumption:a1")
    assert (ref.type, ref.id) == (EntityType.ASSUMPTION, "a1")
    assert cli.parse_ref("hypothesis").id is None
    with pytest.raises(ValueError, match="Unknown entity type 'spaceship'"):
        cli.parse_ref("spaceship:1")


def test_parse_fields() -> None:
    """Test key=value pairs are parsed."""
    assert cli.parse_fields("name=Core, slug=core-model,ignored") == {"name": "Core", "slug": "core-model"}


def test_create_read_and_link(capsys: pytest.CaptureFixture[str]) -> None:
    """Test creating an entity with links persists both."""
    cli.create("assumption", "statement=Teams will pay,slug=teams-pay", link=("hypothesis:h1:tested_by",))
    out = capsys.readouterr().out
    assert out.startswith("Created assumption ")
    assumption_id = out.split()[-1]

    cli.read(f"assumption:{assumption_id}")
    assert "statement: Teams will pay" in capsys.readouterr().out

    link_commands.list_links(f"assumption:{assumption_id}")
    assert f"assumption:{assumption_id} --[tested_by]--> hypothesis:h1" in capsys.readouterr().out


def test_duplicate_slug_exits(capsys: pytest.CaptureFixture[str]) -> None:
    """Test a failed action prints its error and exits non-zero."""
    cli.create("assumption", "statement=One,slug=same")
    with pytest.raises(SystemExit) as exc_info:
        cli.create("assumption", "statement=Two,slug=same")
    assert exc_info.value.code == 1
    assert "Error [DATABASE_ERROR]: Slug already in use" in capsys.readouterr().err


def test_link_sync_and_tree(capsys: pytest.CaptureFixture[str]) -> None:
    """Test syncing a group and showing the relationship panel."""
    cli.create("business_model_canvas", "name=Core")
    canvas_id = capsys.readouterr().out.split()[-1]
    cli.create("value_proposition_canvas", "name=Self-serve")
    vpc_id = capsys.readouterr().out.split()[-1]

    link_commands.sync(f"business_model_canvas:{canvas_id}", "value_proposition_canvas", vpc_id)
    assert "+1 -0" in capsys.readouterr().out

    link_commands.tree(f"business_model_canvas:{canvas_id}")
    out = capsys.readouterr().out
    assert "Strategic Context (1):" in out
    assert f"- {vpc_id} Self-serve" in out


def test_link_types(capsys: pytest.CaptureFixture[str]) -> None:
    """Test the allowed link types for a pair are listed."""
    link_commands.types("experiment", "hypothesis")
    out = capsys.readouterr().out
    assert "experiment -> hypothesis: tests, validates, related, references" in out
    assert "Common pattern: Experiments test hypotheses" in out


def test_evidence_commands(capsys: pytest.CaptureFixture[str]) -> None:
    """Test adding and summarising evidence."""
    cli.create("assumption", "statement=Teams will pay")
    ref = f"assumption:{capsys.readouterr().out.split()[-1]}"

    annotation_commands.add_evidence(ref, "interview", title="Call notes", confidence=0.8)
    annotation_commands.add_evidence(ref, "analytics", refutes=True)
    capsys.readouterr()

    annotation_commands.evidence_summary(ref)
    out = capsys.readouterr().out
    assert "2 (1 supporting, 1 refuting)" in out
    assert "Average confidence: 0.80" in out


def test_stage_commands(capsys: pytest.CaptureFixture[str]) -> None:
    """Test adding, moving and listing stages."""
    cli.create("user_journey", "name=Onboarding")
    journey_id = capsys.readouterr().out.split()[-1]
    for name in ("Awareness", "Research"):
        stage_commands.add(journey_id, name)
    stage_ids = [line.split()[2] for line in capsys.readouterr().out.splitlines()]

    stage_commands.move(stage_ids[1], "left")
    capsys.readouterr()
    stage_commands.list_stages(journey_id)

    out = capsys.readouterr().out.splitlines()
    assert out == [f"0. {stage_ids[1]} Research", f"1. {stage_ids[0]} Awareness"]


def test_config_commands(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    """Test settings are validated, masked and shown with their source."""
    config_commands.set("supabase.key", "service-key")
    assert capsys.readouterr().out == "Set supabase.key = **** (local)\n"

    config_commands.get("backend")
    assert capsys.readouterr().out == "backend = local (default)\n"

    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    config_commands.list_config(all_=True)
    out = capsys.readouterr().out
    assert "supabase.url = https://example.supabase.co (environment)" in out
    assert "supabase.key = **** (local)" in out

    config_commands.unset("supabase.key")
    assert capsys.readouterr().out == "Unset supabase.key (local)\n"

    with pytest.raises(SystemExit) as exc_info:
        config_commands.set("backend", "sqlite")
    assert exc_info.value.code == 1
    assert "Error: Unknown backend: sqlite" in capsys.readouterr().err
    assert get_config().get("backend") == "local"
