"""
Out-of-tree module discovery and source metadata.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# A directory is a module iff it holds this kbuild descriptor
BUILD_DESCRIPTOR = "Makefile"


def _is_entry_name(name: str) -> bool:
    """True if name is one directory entry under the modules root."""
    return name not in (".", "..") and Path(name).name == name


class NotFoundError(LookupError):
    """A named module directory or one of its files does not exist."""

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f"Module not found: {name}")


@dataclass
class Module:
    """A discovered out-of-tree module."""

    name: str
    source_path: Path

    @property
    def artifact_path(self) -> Path:
        return self.source_path / f"{self.name}.ko"

    @property
    def source_file(self) -> Path:
        return self.source_path / f"{self.name}.c"

    @property
    def is_built(self) -> bool:
        # Checked on every access, never cached
        return self.artifact_path.is_file()


@dataclass
class ModuleInfo:
    """Metadata declared with MODULE_* macros in a module's source."""

    name: str
    license: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    description: Optional[str] = None
    version: Optional[str] = None

    def summary(self) -> str:
        lines = [f"  {'LICENSE':<12} {self.license or '-'}"]
        for author in self.authors or ["-"]:
            lines.append(f"  {'AUTHOR':<12} {author}")
        lines.append(f"  {'DESCRIPTION':<12} {self.description or '-'}")
        if self.version:
            lines.append(f"  {'VERSION':<12} {self.version}")
        return "\n".join(lines)


class ModuleInfoParser:
    """Extract MODULE_* declarations from C source."""

    MACRO_PATTERN = re.compile(
        r'^\s*MODULE_(LICENSE|AUTHOR|DESCRIPTION|VERSION)\s*\(\s*"(.*)"\s*\)\s*;?'
    )

    @staticmethod
    def parse(name: str, source: str) -> ModuleInfo:
        info = ModuleInfo(name=name)

        for line in source.splitlines():
            match = ModuleInfoParser.MACRO_PATTERN.match(line)
            if not match:
                continue

            macro, value = match.groups()
            if macro == "AUTHOR":
                info.authors.append(value)
            elif macro == "LICENSE":
                info.license = value
            elif macro == "DESCRIPTION":
                info.description = value
            elif macro == "VERSION":
                info.version = value

        return info


class ModuleRegistry:
    """Enumerates module projects under the modules root."""

    def __init__(self, modules_dir: Path):
        """Initialize registry.

        Args:
            modules_dir: Directory holding one subdirectory per module
        """
        self.modules_dir = Path(modules_dir)

    def list_modules(self, name: Optional[str] = None) -> List[str]:
        """List module names.

        Args:
            name: Restrict the listing to this module

        Returns:
            Sorted module names, or [name] when a filter is given

        Raises:
            NotFoundError: If the named module directory does not exist, or
                the name is not a single directory entry under the modules root
        """
        if name:
            if not _is_entry_name(name):
                raise NotFoundError(name, f"Invalid module name: {name}")
            if not (self.modules_dir / name).is_dir():
                raise NotFoundError(name)
            return [name]

        if not self.modules_dir.is_dir():
            logger.debug(f"Modules directory does not exist: {self.modules_dir}")
            return []

        modules = []
        for entry in self.modules_dir.iterdir():
            if not entry.is_dir():
                continue
            if not (entry / BUILD_DESCRIPTOR).is_file():
                logger.debug(f"Skipping {entry.name}: no {BUILD_DESCRIPTOR}")
                continue
            modules.append(entry.name)

        return sorted(modules)

    def get_module(self, name: str) -> Module:
        self.list_modules(name)
        return Module(name=name, source_path=self.modules_dir / name)

    def iter_modules(self) -> List[Module]:
        return [Module(name=n, source_path=self.modules_dir / n) for n in self.list_modules()]

    def read_module_info(self, name: str) -> ModuleInfo:
        """Read license/author/description metadata from <name>/<name>.c.

        Raises:
            NotFoundError: If the module's source file is missing
        """
        if not _is_entry_name(name):
            raise NotFoundError(name, f"Invalid module name: {name}")
        source_file = self.modules_dir / name / f"{name}.c"
        if not source_file.is_file():
            raise NotFoundError(name, f"Source file not found: {name}.c")

        return ModuleInfoParser.parse(name, source_file.read_text(errors="replace"))

    def describe(self, name: str) -> str:
        """Module description for listings, empty if none is declared."""
        try:
            return self.read_module_info(name).description or ""
        except NotFoundError:
            return ""
