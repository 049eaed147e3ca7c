"""
Skeleton templates for new out-of-tree modules.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .module_registry import BUILD_DESCRIPTOR, Module
from .queue_manager import validate_entry
from .queue_store import WILDCARD

logger = logging.getLogger(__name__)

SOURCE_TEMPLATE = """\
// SPDX-License-Identifier: GPL-2.0
/*
 * {name} - Kernel module
 */

#include <linux/init.h>
#include <linux/module.h>
#include <linux/kernel.h>

static int __init {name}_init(void)
{{
\tpr_info("{name}: Module loaded\\n");
\treturn 0;
}}

static void __exit {name}_exit(void)
{{
\tpr_info("{name}: Module unloaded\\n");
}}

module_init({name}_init);
module_exit({name}_exit);

MODULE_LICENSE("GPL");
MODULE_AUTHOR("{author}");
MODULE_DESCRIPTION("{description}");
MODULE_VERSION("1.0");
"""

MAKEFILE_TEMPLATE = """\
obj-m += {name}.o

# Optional: Add extra source files
# {name}-objs := {name}.o helper.o
"""


@dataclass
class ModuleTemplate:
    """Files written for a new module, keyed by file name pattern."""

    author: str = "Your Name"
    description: str = "A simple kernel module"

    def render(self, name: str) -> Dict[str, str]:
        values = {
            "name": name,
            "author": self.author.replace('"', '\\"'),
            "description": self.description.replace('"', '\\"'),
        }
        return {
            f"{name}.c": SOURCE_TEMPLATE.format(**values),
            BUILD_DESCRIPTOR: MAKEFILE_TEMPLATE.format(**values),
        }


class TemplateManager:
    """Creates new module directories from templates."""

    def __init__(self, modules_dir: Path):
        self.modules_dir = Path(modules_dir)

    def create_module(
        self,
        name: str,
        author: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Module:
        """Create <modules_dir>/<name> with a source file and kbuild Makefile.

        Raises:
            ValueError: If name is not a valid module name
            FileExistsError: If the module directory already exists
        """
        if name == WILDCARD:
            raise ValueError(f"Invalid module name: {name!r}")
        validate_entry(name)

        mod_path = self.modules_dir / name
        if mod_path.exists():
            raise FileExistsError(f"Module already exists: {name}")

        template = ModuleTemplate()
        if author:
            template.author = author
        if description:
            template.description = description

        mod_path.mkdir(parents=True)
        for file_name, content in template.render(name).items():
            (mod_path / file_name).write_text(content)

        logger.info(f"Created module: {mod_path}")
        return Module(name=name, source_path=mod_path)
