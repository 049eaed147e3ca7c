"""
Module build management - compiling out-of-tree modules against the kernel tree.
"""

import logging
import re
import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from dataclasses import dataclass, field

from .config_manager import BuildConfig
from .module_registry import Module, ModuleRegistry

logger = logging.getLogger(__name__)

BUILD_TARGET = "modules"
CLEAN_TARGET = "clean"


@dataclass
class BuildError:
    """Represents a single build error or warning."""

    file: str
    line: Optional[int]
    column: Optional[int]
    error_type: str  # 'error', 'warning', 'fatal'
    message: str

    def __str__(self) -> str:
        location = f"{self.file}"
        if self.line:
            location += f":{self.line}"
        if self.column:
            location += f":{self.column}"
        return f"{location}: {self.error_type}: {self.message}"


@dataclass
class BuildResult:
    """Result of one make invocation for one module."""

    module: str
    target: str
    success: bool
    duration: float = 0.0  # seconds
    exit_code: int = 0
    output: str = ""
    errors: List[BuildError] = field(default_factory=list)
    warnings: List[BuildError] = field(default_factory=list)

    def summary(self) -> str:
        """Get a human-readable summary."""
        verb = "Clean" if self.target == CLEAN_TARGET else "Build"
        if self.success:
            return f"✓ {verb} of {self.module} succeeded in {self.duration:.1f}s ({len(self.warnings)} warnings)"
        return (
            f"✗ {verb} of {self.module} failed in {self.duration:.1f}s "
            f"(exit {self.exit_code}, {len(self.errors)} errors, {len(self.warnings)} warnings)"
        )


class BuildFailure(Exception):
    """A module build returned non-zero; the rest of the batch was skipped."""

    def __init__(self, module: str, result: BuildResult, completed: Optional[List[BuildResult]] = None):
        self.module = module
        self.result = result
        self.completed = completed or []
        super().__init__(f"Failed to build module: {module} (exit {result.exit_code})")


class BuildOutputParser:
    """Parse kbuild output to extract errors and warnings."""

    ERROR_PATTERNS = [
        # GCC/Clang: file:line:column: error: message
        re.compile(r"^(.+?):(\d+):(\d+):\s*(error|fatal error|warning):\s*(.+)$"),
        # modpost: ERROR: modpost: "sym" [path/mod.ko] undefined!
        re.compile(r"^(ERROR|WARNING):\s*modpost:\s*(.+)$"),
        # Make errors
        re.compile(r"^make.*:\s*\*\*\*\s*\[(.+?)\]\s*Error\s+(\d+)"),
    ]

    @staticmethod
    def parse_output(output: str) -> Tuple[List[BuildError], List[BuildError]]:
        """Parse build output and extract errors and warnings.

        Returns:
            Tuple of (errors, warnings)
        """
        errors = []
        warnings = []

        for line in output.splitlines():
            parsed = BuildOutputParser._parse_line(line)
            if parsed is None:
                continue
            if parsed.error_type == "warning":
                warnings.append(parsed)
            else:
                errors.append(parsed)

        return errors, warnings

    @staticmethod
    def _parse_line(line: str) -> Optional[BuildError]:
        line = line.strip()
        compiler, modpost, make = BuildOutputParser.ERROR_PATTERNS

        match = compiler.match(line)
        if match:
            file_path, line_num, col_num, error_type, message = match.groups()
            return BuildError(
                file=file_path,
                line=int(line_num),
                column=int(col_num),
                error_type="error" if error_type == "fatal error" else error_type,
                message=message,
            )

        match = modpost.match(line)
        if match:
            level, message = match.groups()
            return BuildError(
                file="modpost",
                line=None,
                column=None,
                error_type=level.lower(),
                message=message,
            )

        match = make.match(line)
        if match:
            return BuildError(
                file=match.group(1) or "Makefile",
                line=None,
                column=None,
                error_type="error",
                message=f"Make error (exit {match.group(2)})",
            )

        return None


class ModuleBuilder:
    """Runs kbuild for out-of-tree modules, one make process at a time."""

    def __init__(self, config: BuildConfig, registry: Optional[ModuleRegistry] = None):
        """Initialize module builder.

        Args:
            config: Toolchain and path settings
            registry: Module registry (default: one rooted at config.modules_dir)
        """
        self.config = config
        self.kernel_path = config.kernel_path
        if not self.kernel_path.exists():
            raise ValueError(f"Kernel path does not exist: {self.kernel_path}")

        self.registry = registry or ModuleRegistry(config.modules_path)

    def make_command(self, module_path: Optional[Path], target: str) -> List[str]:
        """Assemble the make invocation for a module directory and target."""
        cmd = ["make", "-C", str(self.kernel_path)]
        if module_path is not None:
            cmd.append(f"M={module_path}")
        cmd.extend(self.config.to_make_args())
        if self.config.jobs:
            cmd.append(f"-j{self.config.jobs}")
        cmd.append(target)
        return cmd

    def _run_make(self, name: str, cmd: List[str], target: str) -> BuildResult:
        logger.info(f"Build command: {' '.join(cmd)}")
        start_time = time.time()

        # No timeout: a hung toolchain hangs the caller, Ctrl-C propagates
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,  # Prevent hanging on interactive config prompts
        )

        duration = time.time() - start_time
        combined_output = result.stdout + result.stderr
        errors, warnings = BuildOutputParser.parse_output(combined_output)

        return BuildResult(
            module=name,
            target=target,
            success=(result.returncode == 0),
            duration=duration,
            exit_code=result.returncode,
            output=combined_output,
            errors=errors,
            warnings=warnings,
        )

    def build(self, module: Module, target: str = BUILD_TARGET) -> BuildResult:
        """Run one make target for one module.

        A non-zero exit is recorded in the result, never raised.

        Args:
            module: Module to build
            target: Make target ('modules' or 'clean')

        Returns:
            BuildResult with exit status and captured output
        """
        cmd = self.make_command(module.source_path, target)
        result = self._run_make(module.name, cmd, target)

        if result.success:
            logger.info(result.summary())
        elif target == CLEAN_TARGET:
            logger.warning(result.summary())
        else:
            logger.error(result.summary())
            for i, err in enumerate(result.errors[:3]):
                logger.error(f"  Error {i + 1}: {err}")

        return result

    def build_all(
        self,
        target: str = BUILD_TARGET,
        name: Optional[str] = None,
        on_start: Optional[Callable[[str], None]] = None,
    ) -> List[BuildResult]:
        """Build every module (or just `name`), stopping at the first failure.

        Raises:
            NotFoundError: If `name` is given and does not exist
            BuildFailure: On the first module whose build fails
        """
        names = self.registry.list_modules(name)

        logger.info("=" * 60)
        logger.info(f"Building {len(names)} module(s) against {self.kernel_path}")
        logger.info(f"Target: {target}, Arch: {self.config.arch}")

        results: List[BuildResult] = []
        for mod_name in names:
            module = Module(name=mod_name, source_path=self.registry.modules_dir / mod_name)
            if on_start:
                on_start(mod_name)
            result = self.build(module, target)
            if not result.success:
                logger.info("=" * 60)
                raise BuildFailure(mod_name, result, completed=results)
            results.append(result)

        logger.info("=" * 60)
        return results

    def clean_all(
        self,
        name: Optional[str] = None,
        on_start: Optional[Callable[[str], None]] = None,
    ) -> List[BuildResult]:
        """Clean every module (or just `name`).

        Failures are warnings: the batch always continues, and failed
        results carry success=False.

        Raises:
            NotFoundError: If `name` is given and does not exist
        """
        results = []
        for mod_name in self.registry.list_modules(name):
            module = Module(name=mod_name, source_path=self.registry.modules_dir / mod_name)
            if on_start:
                on_start(mod_name)
            results.append(self.build(module, CLEAN_TARGET))

        failed = [r.module for r in results if not r.success]
        if failed:
            logger.warning(f"Clean failed for: {', '.join(failed)}")
        return results

    def prepare_headers(self) -> BuildResult:
        """Run modules_prepare in the kernel tree so modules can be built."""
        cmd = self.make_command(None, "modules_prepare")
        result = self._run_make("<kernel>", cmd, "modules_prepare")
        if result.success:
            logger.info("✓ Kernel headers prepared for module building")
        else:
            logger.error(f"✗ modules_prepare failed (exit {result.exit_code})")
        return result


def format_build_errors(result: BuildResult, max_errors: int = 10) -> str:
    """Format build errors for display.

    Shows parsed errors and warnings when available. If the build failed but
    no errors were parsed, shows the last 100 lines of raw output instead.

    Args:
        result: BuildResult to format
        max_errors: Maximum number of errors to show

    Returns:
        Formatted error string
    """
    lines = [result.summary(), ""]

    for title, items in (("Errors", result.errors), ("Warnings", result.warnings)):
        if not items:
            continue
        lines.append(f"{title} ({len(items)}):")
        for i, item in enumerate(items[:max_errors], 1):
            lines.append(f"  {i}. {item}")
        if len(items) > max_errors:
            lines.append(f"  ... and {len(items) - max_errors} more {title.lower()}")
        lines.append("")

    if not result.success and not result.errors and result.output:
        lines.append("Build output (last 100 lines):")
        lines.append("=" * 60)
        lines.extend(result.output.splitlines()[-100:])
        lines.append("=" * 60)
        lines.append("")

    return "\n".join(lines)
