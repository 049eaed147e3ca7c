"""
MCP server exposing the module build and queue workflow.
"""
import logging
from pathlib import Path
from typing import Any, List

from mcp.server import Server
from mcp.types import Tool, TextContent

from .build_manager import BuildFailure, ModuleBuilder, format_build_errors
from .config_manager import ConfigManager
from .module_registry import ModuleRegistry
from .queue_manager import Outcome, QueueManager
from .queue_store import QueueStore, WILDCARD
from .status import StatusReporter, format_status_table
from .templates import TemplateManager

# Log to both file and stderr; the file can be tailed during long builds
log_file = Path("/tmp/elmos-mcp.log")
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_file, mode='a'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

app = Server("elmos-mcp")

_NAME_PROPERTY = {
    "type": "string",
    "description": "Module name (directory under the modules root)"
}


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return [
        Tool(
            name="list_modules",
            description="List out-of-tree modules (directories containing a Makefile)",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="module_status",
            description="Show which modules are built and queued for insmod/rmmod",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="build_module",
            description="Build one module, or all modules (stops at the first failure)",
            inputSchema={"type": "object", "properties": {"name": _NAME_PROPERTY}}
        ),
        Tool(
            name="clean_module",
            description="Clean one module, or all modules (failures are warnings)",
            inputSchema={"type": "object", "properties": {"name": _NAME_PROPERTY}}
        ),
        Tool(
            name="module_info",
            description="Show license/author/description declared in a module's source",
            inputSchema={
                "type": "object",
                "properties": {"name": _NAME_PROPERTY},
                "required": ["name"]
            }
        ),
        Tool(
            name="queue_insmod",
            description="Queue a module to be loaded at next boot ('*' or omitted for all)",
            inputSchema={"type": "object", "properties": {"name": _NAME_PROPERTY}}
        ),
        Tool(
            name="queue_rmmod",
            description="Queue a module to be unloaded at next boot ('*' or omitted for all)",
            inputSchema={"type": "object", "properties": {"name": _NAME_PROPERTY}}
        ),
        Tool(
            name="reset_module_queue",
            description="Clear both insmod and rmmod queues",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="create_module",
            description="Create a new module skeleton (source file and kbuild Makefile)",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": _NAME_PROPERTY,
                    "author": {"type": "string"},
                    "description": {"type": "string"}
                },
                "required": ["name"]
            }
        ),
        Tool(
            name="prepare_module_headers",
            description="Run 'make modules_prepare' in the configured kernel tree",
            inputSchema={"type": "object", "properties": {}}
        ),
    ]


def _text(text: str) -> List[TextContent]:
    return [TextContent(type="text", text=text)]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    logger.info(f"TOOL CALL: {name} {arguments}")
    arguments = arguments or {}

    try:
        config = ConfigManager().load()
        registry = ModuleRegistry(config.modules_path)
        store = QueueStore(config.state_path)
        module_name = arguments.get("name")

        if name == "list_modules":
            modules = registry.list_modules()
            if not modules:
                return _text(f"No modules found in {config.modules_path}")
            lines = []
            for mod in modules:
                desc = registry.describe(mod)
                lines.append(f"{mod} - {desc}" if desc else mod)
            return _text("\n".join(lines))

        elif name == "module_status":
            rows = StatusReporter(registry, store).report()
            return _text(format_status_table(rows))

        elif name == "build_module":
            builder = ModuleBuilder(config, registry)
            try:
                results = builder.build_all(name=module_name)
            except BuildFailure as e:
                output = "".join(f"✓ Built: {r.module}\n" for r in e.completed)
                output += f"✗ Failed to build module: {e.module}\n\n"
                output += format_build_errors(e.result)
                return _text(output)
            if not results:
                return _text(f"No modules found in {config.modules_path}")
            return _text("\n".join(r.summary() for r in results))

        elif name == "clean_module":
            builder = ModuleBuilder(config, registry)
            results = builder.clean_all(name=module_name)
            return _text("\n".join(r.summary() for r in results) or "No modules to clean")

        elif name == "module_info":
            info = registry.read_module_info(arguments["name"])
            return _text(f"Metadata for module: {info.name}\n{info.summary()}")

        elif name in ("queue_insmod", "queue_rmmod"):
            item = module_name or WILDCARD
            if item != WILDCARD:
                registry.list_modules(item)
            manager = QueueManager(store)
            if name == "queue_insmod":
                outcome, label = manager.enqueue_insmod(item), "insmod"
            else:
                outcome, label = manager.enqueue_rmmod(item), "rmmod"
            if outcome is Outcome.ALREADY_QUEUED:
                return _text(f"Already queued for {label}: {item}")
            return _text(f"✓ Queued for {label}: {item}")

        elif name == "reset_module_queue":
            QueueManager(store).reset()
            return _text("✓ Queues cleared")

        elif name == "create_module":
            module = TemplateManager(config.modules_path).create_module(
                arguments["name"],
                author=arguments.get("author"),
                description=arguments.get("description"),
            )
            return _text(f"✓ Created module: {module.source_path}")

        elif name == "prepare_module_headers":
            result = ModuleBuilder(config, registry).prepare_headers()
            if result.success:
                return _text("✓ Kernel headers prepared for module building")
            return _text(format_build_errors(result))

        else:
            raise ValueError(f"Unknown tool: {name}")

    except Exception as e:
        logger.error(f"Error in tool {name}: {e}", exc_info=True)
        return _text(f"Error: {str(e)}")


def main():
    """Main entry point for the MCP server."""
    import asyncio
    import mcp.server.stdio

    async def run():
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options()
            )

    asyncio.run(run())


if __name__ == "__main__":
    main()
