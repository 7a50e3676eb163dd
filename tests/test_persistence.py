"""Tests for vmrunner.persistence module."""

from __future__ import annotations

import json

import pytest

from vmrunner.exceptions import ConfigLoadError, ManagerError
from vmrunner.persistence import load_config, save_config


@pytest.fixture
def guest_dir(layout):
    layout.path.mkdir(parents=True)
    return layout.path


class TestSaveConfig:
    def test_round_trip(self, default_vm_config, layout, guest_dir):
        save_config(default_vm_config, layout)
        assert load_config(layout) == default_vm_config

    def test_writes_sorted_json(self, default_vm_config, layout, guest_dir):
        save_config(default_vm_config, layout)
        data = json.loads(layout.config_file.read_text())
        assert list(data) == sorted(data)
        assert data["uuid"] == default_vm_config.uuid
        assert data["vcpus"] == 2

    def test_unwritable_directory(self, default_vm_config, layout):
        with pytest.raises(ManagerError, match="unable to write config"):
            save_config(default_vm_config, layout)


class TestLoadConfig:
    def _write(self, layout, payload):
        layout.config_file.write_text(payload if isinstance(payload, str) else json.dumps(payload))

    def test_missing_file(self, layout, guest_dir):
        with pytest.raises(ConfigLoadError, match="unable to read config"):
            load_config(layout)

    def test_malformed_json(self, layout, guest_dir):
        self._write(layout, "{not json")
        with pytest.raises(ConfigLoadError, match="malformed config"):
            load_config(layout)

    def test_not_an_object(self, layout, guest_dir):
        self._write(layout, [1, 2])
        with pytest.raises(ConfigLoadError, match="expected a JSON object"):
            load_config(layout)

    def test_missing_uuid(self, layout, guest_dir):
        self._write(layout, {"name": "vm1"})
        with pytest.raises(ConfigLoadError, match="incomplete config"):
            load_config(layout)

    def test_mistyped_values(self, default_vm_config, layout, guest_dir):
        data = default_vm_config.to_dict()
        data["vcpus"] = "two"
        data["wire_guest_memory"] = "yes"
        self._write(layout, data)
        with pytest.raises(ConfigLoadError, match="vcpus, .*wire_guest_memory"):
            load_config(layout)

    def test_undecodable_bytes(self, layout, guest_dir):
        layout.config_file.write_bytes(b'{"uuid": "\xff\xfe"}')
        with pytest.raises(ConfigLoadError, match="unable to read config"):
            load_config(layout)

    @pytest.mark.parametrize(
        "field,value",
        [("ram", ""), ("ram", "lots"), ("disk_size", "1.5G"), ("vcpus", 0)],
    )
    def test_out_of_range_values(self, default_vm_config, layout, guest_dir, field, value):
        data = default_vm_config.to_dict()
        data[field] = value
        self._write(layout, data)
        with pytest.raises(ConfigLoadError, match=f"invalid values for {field}"):
            load_config(layout)

    def test_uuid_mismatch(self, default_vm_config, layout, guest_dir):
        data = default_vm_config.to_dict()
        data["uuid"] = "ffffffff-5678-4def-8123-567890abcdef"
        self._write(layout, data)
        with pytest.raises(ConfigLoadError, match="belongs to guest ffffffff"):
            load_config(layout)

    def test_unknown_keys_ignored(self, default_vm_config, layout, guest_dir, capsys):
        data = default_vm_config.to_dict()
        data["schema"] = 2
        self._write(layout, data)
        assert load_config(layout) == default_vm_config
        assert "Ignoring unknown keys" in capsys.readouterr().out

    def test_missing_optional_fields_take_defaults(self, layout, guest_dir):
        self._write(layout, {"uuid": layout.uuid})
        cfg = load_config(layout)
        assert cfg.vcpus == 1
        assert cfg.ram == "256M"
        assert cfg.pool is None
