"""Tests for the gqlgate CLI and configuration loading."""

from __future__ import annotations

import pytest
import yaml

from gqlgate.cli.config import load_config
from gqlgate.cli.main import app
from gqlgate.core.registry import document_identifier, read_manifest

VIEWER_QUERY = "query Viewer { viewer { id } }\n"


@pytest.fixture
def query_file(tmp_path):
    path = tmp_path / "viewer.graphql"
    path.write_text(VIEWER_QUERY)
    return path


def test_hash(query_file, capsys):
    assert app(["hash", str(query_file)]) == 0

    assert capsys.readouterr().out.strip() == document_identifier(VIEWER_QUERY)


def test_hash_missing_file(tmp_path, capsys):
    assert app(["hash", str(tmp_path / "missing.graphql")]) == 1
    assert "not found" in capsys.readouterr().err


def test_persist_and_allow(query_file, tmp_path, capsys):
    manifest = tmp_path / "persisted.yaml"
    identifier = document_identifier(VIEWER_QUERY)

    assert app(["persist", str(query_file), "--manifest", str(manifest)]) == 0
    assert read_manifest(manifest) == {identifier: {"document": VIEWER_QUERY, "allowed": False}}
    assert "Wrote 1 queries" in capsys.readouterr().out

    assert app(["allow", identifier, "-m", str(manifest)]) == 0
    assert read_manifest(manifest)[identifier]["allowed"] is True

    # Re-persisting keeps the allow flag
    assert app(["persist", str(query_file), "-m", str(manifest)]) == 0
    assert read_manifest(manifest)[identifier]["allowed"] is True

    assert app(["allow", identifier, "-m", str(manifest), "--deny"]) == 0
    assert read_manifest(manifest)[identifier]["allowed"] is False


def test_persist_with_allow(query_file, tmp_path):
    manifest = tmp_path / "persisted.json"

    assert app(["persist", str(query_file), "-m", str(manifest), "--allow"]) == 0

    assert read_manifest(manifest)[document_identifier(VIEWER_QUERY)]["allowed"] is True


def test_persist_rejects_invalid_document(tmp_path, capsys):
    broken = tmp_path / "broken.graphql"
    broken.write_text("query {")
    manifest = tmp_path / "persisted.yaml"

    assert app(["persist", str(broken), "-m", str(manifest)]) == 1
    assert "not a valid document" in capsys.readouterr().err
    assert not manifest.exists()


def test_allow_unknown_identifier(tmp_path, capsys):
    assert app(["allow", "missing", "-m", str(tmp_path / "persisted.yaml")]) == 1
    assert "not found" in capsys.readouterr().err


def test_no_command_prints_help(capsys):
    assert app([]) == 0
    assert "usage: gqlgate" in capsys.readouterr().out


# =============================================================================
# Configuration
# =============================================================================


def test_load_config_from_file(tmp_path):
    path = tmp_path / "gqlgate.yaml"
    path.write_text(yaml.safe_dump({"registry_mode": "whitelist", "max_depth": 4, "resolver_timeout": None}))

    settings = load_config(path)

    assert settings.registry_mode == "whitelist"
    assert settings.max_depth == 4
    assert settings.resolver_timeout is None
    assert settings.mutation_timeout == 15.0


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "gqlgate.yaml"
    path.write_text(yaml.safe_dump({"registry_mode": "whitelist", "max_depth": 4}))
    monkeypatch.setenv("GQLGATE_MAX_DEPTH", "9")

    settings = load_config(path)

    assert settings.max_depth == 9
    assert settings.registry_mode == "whitelist"


def test_missing_config_file_uses_defaults(tmp_path):
    settings = load_config(tmp_path / "absent.yaml")

    assert settings.registry_mode == "open"
    assert settings.resolver_timeout == 10.0


@pytest.mark.parametrize("content", ["- a\n- b\n", "registry_mode: closed\n", "max_depth: 0\n"])
def test_invalid_config_rejected(tmp_path, content):
    path = tmp_path / "gqlgate.yaml"
    path.write_text(content)

    with pytest.raises(ValueError):
        load_config(path)
