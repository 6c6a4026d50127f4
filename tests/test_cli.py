"""
Tests for the admin command line.
"""

import json

from bloodbank.cli import main


def _db(tmp_path):
    return ["--db-uri", f"sqlite:///{tmp_path / 'cli.db'}"]


def test_add_user_and_set_role(tmp_path, capsys):
    assert main(_db(tmp_path) + ["add-user", "nurse-1", "--name", "Nurse One"]) == 0
    assert main(_db(tmp_path) + ["add-user", "nurse-1"]) == 0
    assert main(_db(tmp_path) + ["set-role", "nurse-1", "medical_staff"]) == 0
    out = capsys.readouterr().out
    assert "Added user nurse-1" in out
    assert "already exists" in out
    assert "nurse-1 is now medical_staff" in out


def test_set_role_unknown_user(tmp_path, capsys):
    assert main(_db(tmp_path) + ["set-role", "ghost", "regular_user"]) == 1
    assert "Unknown user ghost" in capsys.readouterr().err


def test_issue_token(tmp_path, capsys):
    main(_db(tmp_path) + ["add-user", "u1"])
    capsys.readouterr()
    assert main(_db(tmp_path) + ["issue-token", "u1"]) == 0
    token = capsys.readouterr().out.strip().splitlines()[-1]
    assert token.count(".") == 2


def test_show_unit_missing(tmp_path, capsys):
    assert main(_db(tmp_path) + ["show-unit", "GHOST"]) == 1
    assert "GHOST" in capsys.readouterr().err


def test_init_db(tmp_path, capsys):
    assert main(_db(tmp_path) + ["init-db"]) == 0
    assert "Tables are ready" in capsys.readouterr().out
