"""
Workspace configuration - kernel tree, modules root and toolchain settings.
"""
import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0"
DEFAULT_CONFIG_DIR = Path.home() / ".elmos"


@dataclass
class BuildConfig:
    """Settings passed through to every kbuild invocation.

    Toolchain values are opaque: they are rendered into make variables
    verbatim and never validated here.
    """

    kernel_dir: str = ""
    modules_dir: str = ""
    arch: str = "arm64"
    cross_compile_prefix: Optional[str] = None  # e.g., "aarch64-linux-gnu-"
    use_llvm: bool = True
    host_cflags: Optional[str] = None
    jobs: Optional[int] = None
    state_file: str = ""  # insmod/rmmod queue file, defaults to <config_dir>/module.cfg

    # Common architecture to toolchain mappings
    ARCH_TOOLCHAINS = {
        "arm64": "aarch64-linux-gnu-",
        "arm": "arm-linux-gnueabihf-",
        "riscv": "riscv64-linux-gnu-",
        "powerpc": "powerpc64le-linux-gnu-",
        "mips": "mips-linux-gnu-",
        "x86_64": None,  # Native compilation
        "x86": None,
    }

    def __post_init__(self):
        """Auto-detect cross-compile prefix if not specified."""
        if self.cross_compile_prefix is None and not self.use_llvm:
            self.cross_compile_prefix = self.ARCH_TOOLCHAINS.get(self.arch)

    @property
    def kernel_path(self) -> Path:
        return Path(self.kernel_dir).expanduser()

    @property
    def modules_path(self) -> Path:
        return Path(self.modules_dir).expanduser()

    @property
    def state_path(self) -> Path:
        return Path(self.state_file).expanduser()

    def to_make_args(self) -> List[str]:
        """Convert to make command-line arguments.

        Returns:
            List of make arguments (ARCH=..., LLVM=1, CROSS_COMPILE=..., etc.)
        """
        args = [f"ARCH={self.arch}"]

        if self.use_llvm:
            args.append("LLVM=1")
        if self.cross_compile_prefix:
            args.append(f"CROSS_COMPILE={self.cross_compile_prefix}")
        if self.host_cflags:
            args.append(f"HOSTCFLAGS={self.host_cflags}")

        return args

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildConfig":
        """Build a config from stored data, ignoring keys we don't know."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigManager:
    """Manages workspace configuration storage."""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory for config storage (default: $ELMOS_CONFIG_DIR or ~/.elmos)
        """
        if config_dir is None:
            env_dir = os.environ.get("ELMOS_CONFIG_DIR")
            config_dir = Path(env_dir) if env_dir else DEFAULT_CONFIG_DIR

        self.config_dir = Path(config_dir).expanduser()
        self.config_file = self.config_dir / "config.json"

    def defaults(self) -> BuildConfig:
        """Configuration used when nothing has been saved yet."""
        return BuildConfig(
            kernel_dir=str(self.config_dir / "linux"),
            modules_dir=str(self.config_dir / "modules"),
            state_file=str(self.config_dir / "module.cfg"),
        )

    def load(self) -> BuildConfig:
        """
        Load the workspace configuration.

        Returns:
            Stored BuildConfig merged over the defaults
        """
        data = self.defaults().to_dict()

        if not self.config_file.exists():
            logger.debug(f"Config file not found: {self.config_file}")
            return BuildConfig.from_dict(data)

        try:
            with open(self.config_file, "r") as f:
                stored = json.load(f)
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise

        version = stored.get("version", CONFIG_VERSION)
        if version != CONFIG_VERSION:
            logger.warning(f"Unknown config version: {version}")

        # Empty strings mean "use the default" for path settings
        for key, value in stored.get("build", {}).items():
            if value in ("", None) and key in ("kernel_dir", "modules_dir", "state_file"):
                continue
            data[key] = value

        config = BuildConfig.from_dict(data)
        logger.debug(f"Loaded config from {self.config_file}")
        return config

    def save(self, config: BuildConfig) -> None:
        """
        Save the workspace configuration.

        Args:
            config: BuildConfig to save
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        data = {"version": CONFIG_VERSION, "build": config.to_dict()}

        # Write atomically using a temporary file
        tmp_file = self.config_file.with_suffix(".tmp")
        try:
            with open(tmp_file, "w") as f:
                json.dump(data, f, indent=2)
            tmp_file.replace(self.config_file)
            logger.info(f"Saved config to {self.config_file}")
        except Exception as e:
            if tmp_file.exists():
                tmp_file.unlink()
            logger.error(f"Failed to save config: {e}")
            raise

    def set_value(self, key: str, value: str) -> BuildConfig:
        """
        Update a single setting and persist it.

        Args:
            key: BuildConfig field name
            value: New value as given on the command line

        Returns:
            The updated configuration
        """
        config = self.load()
        field_types = {f.name: f.type for f in fields(BuildConfig)}
        if key not in field_types:
            raise ValueError(f"Unknown config key: {key}")

        data = config.to_dict()

        # An auto-detected prefix follows the arch/toolchain it was derived from
        auto_prefix = BuildConfig.ARCH_TOOLCHAINS.get(config.arch)
        if key in ("arch", "use_llvm") and auto_prefix and data["cross_compile_prefix"] == auto_prefix:
            data["cross_compile_prefix"] = None

        if key == "use_llvm":
            data[key] = value.strip().lower() in ("1", "true", "yes", "on")
        elif key == "jobs":
            data[key] = int(value) if value else None
        elif key in ("cross_compile_prefix", "host_cflags"):
            data[key] = value or None
        else:
            data[key] = value

        updated = BuildConfig.from_dict(data)
        self.save(updated)
        return updated
