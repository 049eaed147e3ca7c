"""
Tests for workspace configuration.
"""

import json
import pytest
from pathlib import Path

from elmos.config_manager import BuildConfig, ConfigManager


@pytest.fixture
def config_manager(tmp_path):
    """Create ConfigManager with temporary directory."""
    return ConfigManager(config_dir=tmp_path / "test-config")


def test_to_make_args_llvm_with_prefix():
    """LLVM=1 and CROSS_COMPILE are both passed when set."""
    config = BuildConfig(arch="arm64", cross_compile_prefix="aarch64-elf-", host_cflags="-I/x")
    assert config.to_make_args() == [
        "ARCH=arm64",
        "LLVM=1",
        "CROSS_COMPILE=aarch64-elf-",
        "HOSTCFLAGS=-I/x",
    ]


def test_llvm_without_prefix():
    config = BuildConfig(arch="riscv")
    assert config.cross_compile_prefix is None
    assert config.to_make_args() == ["ARCH=riscv", "LLVM=1"]


def test_gcc_prefix_auto_detected():
    config = BuildConfig(arch="arm64", use_llvm=False)
    assert config.cross_compile_prefix == "aarch64-linux-gnu-"
    assert config.to_make_args() == ["ARCH=arm64", "CROSS_COMPILE=aarch64-linux-gnu-"]


def test_native_gcc_has_no_prefix():
    config = BuildConfig(arch="x86_64", use_llvm=False)
    assert config.to_make_args() == ["ARCH=x86_64"]


def test_from_dict_ignores_unknown_keys():
    config = BuildConfig.from_dict({"arch": "arm", "qemu_memory": "2G"})
    assert config.arch == "arm"


def test_load_defaults_when_missing(config_manager):
    config = config_manager.load()

    assert config.arch == "arm64"
    assert config.use_llvm is True
    assert config.state_path == config_manager.config_dir / "module.cfg"
    assert config.modules_path == config_manager.config_dir / "modules"


def test_save_and_load(config_manager, tmp_path):
    config = BuildConfig(
        kernel_dir=str(tmp_path / "linux"),
        modules_dir=str(tmp_path / "mods"),
        arch="riscv",
        jobs=4,
        state_file=str(tmp_path / "state.cfg"),
    )
    config_manager.save(config)

    data = json.loads(config_manager.config_file.read_text())
    assert data["version"] == "1.0"
    assert data["build"]["arch"] == "riscv"

    assert config_manager.load() == config


def test_empty_paths_fall_back_to_defaults(config_manager):
    config_manager.config_dir.mkdir(parents=True)
    config_manager.config_file.write_text(
        json.dumps({"version": "1.0", "build": {"modules_dir": "", "arch": "arm"}})
    )

    config = config_manager.load()
    assert config.arch == "arm"
    assert config.modules_path == config_manager.config_dir / "modules"


def test_set_value(config_manager):
    config_manager.set_value("use_llvm", "false")
    config_manager.set_value("jobs", "16")
    config_manager.set_value("arch", "arm")

    config = config_manager.load()
    assert config.use_llvm is False
    assert config.jobs == 16
    assert config.cross_compile_prefix == "arm-linux-gnueabihf-"


def test_set_unknown_key(config_manager):
    with pytest.raises(ValueError):
        config_manager.set_value("nope", "1")


def test_config_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("ELMOS_CONFIG_DIR", str(tmp_path / "env-config"))
    assert ConfigManager().config_dir == tmp_path / "env-config"
