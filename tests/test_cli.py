"""Tests for the offline dump command."""

import json

from helpers import qword
from struct_fingerprinter.cli import main


def _dump(tmp_path):
    path = tmp_path / "object.bin"
    path.write_bytes(b"Hello\x00\xAB\xCD" + qword(1700000000) + bytes(16))
    return path


def test_prints_table(tmp_path, capsys):
    assert main([str(_dump(tmp_path)), '--config', str(tmp_path / "none.json")]) == 0

    out = capsys.readouterr().out
    assert "Fingerprint of 0x140000000 (32 bytes)" in out
    assert "sNameOrDesc" in out
    assert "2023-11-14 22:13:20" in out
    assert "_padding" not in out


def test_show_padding_and_offset(tmp_path, capsys):
    code = main([str(_dump(tmp_path)), '--offset', '0x10', '--show-padding',
                 '--config', str(tmp_path / "none.json")])
    assert code == 0

    out = capsys.readouterr().out
    assert "Fingerprint of 0x140000010 (16 bytes)" in out
    assert "_padding" in out


def test_json_and_structure_output(tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({'export_dir': str(tmp_path / "exports")}), encoding='utf-8')
    scan_file = tmp_path / "scan.json"

    code = main([str(_dump(tmp_path)), '--config', str(config),
                 '--json', str(scan_file), '--structure', 'Greeting'])
    assert code == 0

    assert json.loads(scan_file.read_text(encoding='utf-8'))['metadata']['length'] == 32
    registry = json.loads((tmp_path / "exports" / "structures.json").read_text(encoding='utf-8'))
    assert "Greeting" in registry['structures']


def test_missing_dump(tmp_path, capsys):
    assert main([str(tmp_path / "missing.bin")]) == 1
    assert "Could not read" in capsys.readouterr().err


def test_bad_base_address(tmp_path, capsys):
    assert main([str(_dump(tmp_path)), '--base', '0', '--config', str(tmp_path / "none.json")]) == 1
    assert "Scan failed" in capsys.readouterr().err
