"""Tests for the command-line interface."""

import sys
from pathlib import Path

from typer.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.app import app
from cli.commands.validate import find_unknown_values, validate_image
from radioconv.codec.fields import Unknown
from radioconv.containers import read_image, write_image

runner = CliRunner()


class TestValidateImage:
    """Test cases for validate_image."""

    def test_valid(self, tmp_path, table, engine, glider_image):
        path = tmp_path / "backup.bin"
        write_image(glider_image, path, table)
        result = validate_image(engine, path)

        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_container_error(self, tmp_path, engine):
        path = tmp_path / "broken.otx"
        path.write_bytes(b"not a zip")
        result = validate_image(engine, path)

        assert not result.valid
        assert result.errors[0].area == "Container"

    def test_find_unknown_values(self):
        tree = {"radio": {"mode": Unknown(6)}, "models": [{"timers": [{"mode": Unknown(3)}]}]}
        assert find_unknown_values(tree) == ["radio.mode", "models[0].timers[0].mode"]


class TestCommands:
    """Test cases for the typer commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "radioconv" in result.output

    def test_info(self, tmp_path, table, glider_image):
        path = tmp_path / "backup.bin"
        write_image(glider_image, path, table)
        result = runner.invoke(app, ["info", str(path)])
        assert result.exit_code == 0
        assert "x9d" in result.output

    def test_info_missing_file(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "missing.bin")])
        assert result.exit_code == 1

    def test_convert(self, tmp_path, table, glider_image):
        """Test converting a raw image into an archive at the newest version."""
        source = tmp_path / "backup.bin"
        output = tmp_path / "backup.otx"
        write_image(glider_image, source, table)

        result = runner.invoke(app, ["convert", str(source), "-o", str(output)])
        assert result.exit_code == 0
        image = read_image(output, table)
        assert image.version == 219

    def test_convert_rejected(self, tmp_path, table, glider_image):
        source = tmp_path / "backup.bin"
        write_image(glider_image, source, table)

        result = runner.invoke(
            app, ["convert", str(source), "-o", str(tmp_path / "out.bin"), "--board", "tx16s"]
        )
        assert result.exit_code == 1
        assert not (tmp_path / "out.bin").exists()

    def test_validate_invalid(self, tmp_path):
        path = tmp_path / "broken.hex"
        path.write_text("EEPE EEPROM FILE\n0102G3\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
