#!/usr/bin/env python3
"""
Timeline Resizer MCP Server — Set exact layer durations and stagger layers on a timeline.

Provides tools to inspect timeline documents, preview and apply resizes,
undo the last resize and read the remembered settings, plus a prompt
workflow for the common resize-and-stagger task.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Sequence

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult,
    Prompt,
    PromptArgument,
    PromptMessage,
    Resource,
    TextContent,
    Tool,
)

from timeline_resizer.document import TimelineDocument, load_document
from timeline_resizer.models import (
    HostOperationError,
    RepositionMode,
    ResizeSettings,
    split_frames,
)
from timeline_resizer.planner import TimelineResizer
from timeline_resizer.settings import load_settings, save_settings, settings_path

server = Server("timeline-resizer-mcp")
logger = logging.getLogger("timeline-resizer-mcp")
DOCUMENTS_DIR = os.environ.get("TIMELINE_RESIZER_DIR", os.path.expanduser("~"))

# Maximum file size for timeline documents (10 MB).
MAX_FILE_SIZE = 10 * 1024 * 1024

DOCUMENT_EXTENSIONS = ('.json',)
DOCUMENT_GLOB = "*.timeline.json"

MODE_CHOICES = [m.label for m in RepositionMode]


# ============================================================================
# SECURITY UTILITIES
# ============================================================================

def _validate_filepath(filepath: str, allowed_extensions: tuple[str, ...] | None = None) -> str:
    """Validate a user-provided file path against traversal and size attacks.

    Raises:
        ValueError: For invalid paths (null bytes, bad extensions, oversized).
        FileNotFoundError: When the resolved path does not exist.
    """
    if '\x00' in filepath:
        raise ValueError("Invalid file path: null byte detected")

    resolved = Path(filepath).resolve()

    if not resolved.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    if not resolved.is_file():
        raise ValueError(f"Not a regular file: {filepath}")

    if allowed_extensions and resolved.suffix.lower() not in allowed_extensions:
        raise ValueError(
            f"Invalid file type '{resolved.suffix}'. "
            f"Allowed: {', '.join(allowed_extensions)}"
        )

    if resolved.stat().st_size > MAX_FILE_SIZE:
        size_mb = resolved.stat().st_size / (1024 * 1024)
        raise ValueError(f"File too large ({size_mb:.1f} MB). Maximum: {MAX_FILE_SIZE // (1024 * 1024)} MB")

    return str(resolved)


def _validate_output_path(output_path: str) -> str:
    """Validate an output path: resolve traversal, block null bytes, ensure parent exists."""
    if '\x00' in output_path:
        raise ValueError("Invalid output path: null byte detected")

    resolved = Path(output_path).resolve()

    if not resolved.parent.exists():
        raise ValueError(f"Output directory does not exist: {resolved.parent}")

    return str(resolved)


def _validate_directory(directory: str) -> str:
    """Validate a user-provided directory path: block null bytes, require a real directory."""
    if '\x00' in directory:
        raise ValueError("Invalid directory path: null byte detected")

    resolved = Path(directory).resolve()

    if not resolved.is_dir():
        raise ValueError(f"Not a valid directory: {directory}")

    return str(resolved)


# ============================================================================
# UTILITIES
# ============================================================================

def find_timeline_files(directory: str) -> list[str]:
    """Find all timeline documents in a directory."""
    return sorted(str(f) for f in Path(directory).rglob(DOCUMENT_GLOB))


def format_frames(frames: int, frame_rate: float) -> str:
    """Format a frame count as seconds+frames, e.g. '1s 5f (35f)'."""
    seconds, rest = split_frames(frames, frame_rate)
    return f"{seconds}s {rest}f ({frames}f)"


def generate_output_path(input_path: str, suffix: str = "_resized") -> str:
    """Generate output path from input path, keeping a '.timeline.json' double suffix."""
    p = Path(input_path)
    if p.name.endswith(".timeline.json"):
        stem = p.name[:-len(".timeline.json")]
        return str(p.parent / f"{stem}{suffix}.timeline.json")
    return str(p.parent / f"{p.stem}{suffix}{p.suffix}")


def parse_whole_number(value: Any, description: str) -> int:
    """Validate a whole-number entry, accepting ints and digit strings."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for {description}. Value must be a whole number.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"Invalid value for {description}. Value must be a whole number.")


def _load_timeline(filepath: str) -> tuple[str, TimelineDocument]:
    filepath = _validate_filepath(filepath, DOCUMENT_EXTENSIONS)
    return filepath, load_document(filepath)


def _settings_from_arguments(arguments: dict, remembered: ResizeSettings) -> ResizeSettings:
    """Merge tool arguments over remembered settings; omitted arguments keep remembered values."""
    seconds = remembered.duration_seconds
    frames = remembered.duration_frames
    mode = remembered.reposition_mode
    if arguments.get("seconds") is not None:
        seconds = parse_whole_number(arguments["seconds"], "duration seconds")
    if arguments.get("frames") is not None:
        frames = parse_whole_number(arguments["frames"], "duration frames")
    if arguments.get("mode") is not None:
        mode = RepositionMode.from_string(arguments["mode"])
    settings = ResizeSettings(
        duration_seconds=seconds,
        duration_frames=frames,
        reposition_mode=mode,
    )
    settings.duration.validate()
    return settings


def _items_table(doc: TimelineDocument, indices: Sequence[int] | None = None) -> str:
    rows = "| # | Name | Start | Duration | Selected |\n|---|------|-------|----------|----------|\n"
    targets = range(len(doc.items)) if indices is None else indices
    for i in targets:
        item = doc.items[i]
        rows += (
            f"| {i} | {item.name} | {item.in_point} | "
            f"{format_frames(item.duration, doc.fps)} | {'yes' if item.selected else '-'} |\n"
        )
    return rows


# ============================================================================
# MCP RESOURCES — File discovery
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """Expose discovered timeline documents as MCP resources."""
    resources = []
    for f in find_timeline_files(DOCUMENTS_DIR):
        p = Path(f)
        resources.append(Resource(
            uri=f"file://{f}",
            name=p.name[:-len(".timeline.json")],
            description=f"Timeline document: {p.name}",
            mimeType="application/json",
        ))
    return resources


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read a timeline document and return a summary."""
    filepath = str(uri).replace("file://", "")
    try:
        filepath, doc = _load_timeline(filepath)
    except (ValueError, FileNotFoundError) as e:
        return str(e)

    return f"""Timeline document: {Path(filepath).name}
Frame rate: {doc.fps}fps
Playhead: frame {doc.playhead:g}
Animation mode: {doc.animation_mode}
Layers: {len(doc.items)}
Selected: {len(doc.selected_item_indices())}
Undo entries: {len(doc.history)}"""


# ============================================================================
# MCP PROMPTS — Pre-built workflows
# ============================================================================

@server.list_prompts()
async def list_prompts() -> list[Prompt]:
    return [
        Prompt(
            name="resize-layers",
            description="Guided resize — preview durations and stagger, then apply",
            arguments=[
                PromptArgument(name="filepath", description="Path to timeline document", required=True),
                PromptArgument(name="duration", description="Target duration (e.g., '0s 15f')", required=False),
            ],
        ),
    ]


@server.get_prompt()
async def get_prompt(name: str, arguments: dict[str, str] | None = None) -> GetPromptResult:
    args = arguments or {}
    filepath = args.get("filepath", "<path to your .timeline.json file>")

    if name == "resize-layers":
        duration = args.get("duration", "the remembered duration")
        return GetPromptResult(
            description="Resize and stagger selected layers",
            messages=[PromptMessage(
                role="user",
                content=TextContent(
                    type="text",
                    text=f"""Help me set the duration of the selected layers in my timeline.

File: {filepath}
Duration: {duration}

Please:
1. Use `list_items` to show me the layers and which ones are selected
2. Use `get_settings` to show the settings I used last time
3. Ask whether the layers should stay in place, move to the playhead, or be staggered (top or bottom layer first)
4. Use `plan_resize` to show me where each layer will land
5. Apply it with `resize_items` and show me the result

Remind me that repositioning discards each layer's original position, and that `undo_resize` reverts the whole batch."""
                ),
            )],
        )

    raise ValueError(f"Unknown prompt: {name}")


# ============================================================================
# TOOL DEFINITIONS
# ============================================================================

_DURATION_PROPERTIES = {
    "seconds": {"type": "integer", "description": "Duration whole seconds (default: remembered setting)"},
    "frames": {"type": "integer", "description": "Duration extra frames (default: remembered setting)"},
    "mode": {"type": "string", "enum": MODE_CHOICES, "description": "Reposition mode (default: remembered setting)"},
    "anchor_frame": {"type": "number", "description": "Start frame for repositioning (default: playhead)"},
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="list_documents",
            description="List timeline documents (*.timeline.json) in a directory",
            inputSchema={
                "type": "object",
                "properties": {
                    "directory": {"type": "string", "description": "Directory to search (default: home)"}
                }
            }
        ),
        Tool(
            name="list_items",
            description="List layers with start frame, duration and selection state",
            inputSchema={
                "type": "object",
                "properties": {"filepath": {"type": "string", "description": "Path to timeline document"}},
                "required": ["filepath"]
            }
        ),
        Tool(
            name="get_settings",
            description="Show the remembered duration and reposition mode",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="plan_resize",
            description="Preview the duration and target start frame of each selected layer without editing",
            inputSchema={
                "type": "object",
                "properties": {"filepath": {"type": "string"}, **_DURATION_PROPERTIES},
                "required": ["filepath"]
            }
        ),
        Tool(
            name="resize_items",
            description="Set selected layers to an exact duration and optionally reposition or stagger them",
            inputSchema={
                "type": "object",
                "properties": {
                    "filepath": {"type": "string"},
                    **_DURATION_PROPERTIES,
                    "remember": {"type": "boolean", "default": True, "description": "Save these settings as defaults"},
                    "output_path": {"type": "string"}
                },
                "required": ["filepath"]
            }
        ),
        Tool(
            name="undo_resize",
            description="Undo the most recent resize batch as a single step",
            inputSchema={
                "type": "object",
                "properties": {
                    "filepath": {"type": "string"},
                    "output_path": {"type": "string"}
                },
                "required": ["filepath"]
            }
        ),
    ]


# ============================================================================
# TOOL HANDLERS — Each tool gets its own function
# ============================================================================

async def handle_list_documents(arguments: dict) -> Sequence[TextContent]:
    directory = arguments.get("directory", DOCUMENTS_DIR)
    resolved_dir = _validate_directory(directory)
    files = find_timeline_files(resolved_dir)
    if not files:
        return [TextContent(type="text", text=f"No timeline documents found in {directory}")]
    return [TextContent(type="text", text=f"Found {len(files)} timeline document(s):\n" + "\n".join(f"  - {f}" for f in files))]


async def handle_list_items(arguments: dict) -> Sequence[TextContent]:
    filepath, doc = _load_timeline(arguments["filepath"])
    if not doc.items:
        return [TextContent(type="text", text="No timeline layers found")]
    return [TextContent(type="text", text=f"""# Layers in {Path(filepath).name}

- **Frame rate**: {doc.fps:g}fps
- **Playhead**: frame {doc.playhead:g}
- **Animation mode**: {doc.animation_mode}

{_items_table(doc)}""")]


async def handle_get_settings(arguments: dict) -> Sequence[TextContent]:
    settings = load_settings()
    return [TextContent(type="text", text=f"""# Remembered Settings

- **Duration**: {settings.duration.to_display()}
- **Reposition mode**: {settings.reposition_mode.label}
- **File**: {settings_path()}
""")]


async def handle_plan_resize(arguments: dict) -> Sequence[TextContent]:
    filepath, doc = _load_timeline(arguments["filepath"])
    settings = _settings_from_arguments(arguments, load_settings())
    resizer = TimelineResizer(doc)
    items = resizer.selected_items()
    if not items:
        return [TextContent(type="text", text="No layers selected")]

    total_frames = settings.duration.total_frames(doc.frame_rate())
    placements = resizer.preview(settings, items, anchor_frame=arguments.get("anchor_frame"))
    result = (
        f"# Resize Plan: {Path(filepath).name}\n\n"
        f"- **Duration**: {format_frames(total_frames, doc.fps)}\n"
        f"- **Mode**: {settings.reposition_mode.label}\n\n"
    )
    if not placements:
        result += f"{len(items)} layer(s) keep their start frame.\n"
        return [TextContent(type="text", text=result)]

    result += "| Order | # | Name | Start | End |\n|-------|---|------|-------|-----|\n"
    for step in placements:
        result += (
            f"| {step.visit_order + 1} | {step.item} | {doc.items[step.item].name} | "
            f"{step.target_frame} | {step.target_frame + total_frames} |\n"
        )
    return [TextContent(type="text", text=result)]


async def handle_resize_items(arguments: dict) -> Sequence[TextContent]:
    filepath, doc = _load_timeline(arguments["filepath"])
    output_path = _validate_output_path(
        arguments.get("output_path") or generate_output_path(filepath)
    )
    settings = _settings_from_arguments(arguments, load_settings())

    resizer = TimelineResizer(doc)
    result = resizer.resize_selection(settings, anchor_frame=arguments.get("anchor_frame"))
    if arguments.get("remember", True):
        save_settings(settings)
    doc.save(output_path)

    if not result.succeeded:
        return [TextContent(type="text", text=f"{result.message}\n\nSaved to: {output_path}")]
    return [TextContent(type="text", text=(
        f"Resized {result.items_processed} layer(s) to {format_frames(result.total_frames, doc.fps)} "
        f"({settings.reposition_mode.label})\n\n"
        f"{_items_table(doc, result.items)}\n"
        f"Saved to: {output_path}"
    ))]


async def handle_undo_resize(arguments: dict) -> Sequence[TextContent]:
    filepath, doc = _load_timeline(arguments["filepath"])
    output_path = _validate_output_path(
        arguments.get("output_path") or generate_output_path(filepath, "_undone")
    )
    name = doc.undo()
    doc.save(output_path)
    return [TextContent(type="text", text=f"Undid '{name}'\n\nSaved to: {output_path}")]


# ============================================================================
# TOOL DISPATCH
# ============================================================================

TOOL_HANDLERS = {
    "list_documents": handle_list_documents,
    "list_items": handle_list_items,
    "get_settings": handle_get_settings,
    "plan_resize": handle_plan_resize,
    "resize_items": handle_resize_items,
    "undo_resize": handle_undo_resize,
}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> Sequence[TextContent]:
    handler = TOOL_HANDLERS.get(name)
    if not handler:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]
    try:
        return await handler(arguments)
    except FileNotFoundError as e:
        return [TextContent(type="text", text=f"File not found: {e}")]
    except ValueError as e:
        return [TextContent(type="text", text=f"Validation error: {e}")]
    except HostOperationError as e:
        return [TextContent(type="text", text=f"Timeline error: {e}")]
    except Exception as e:
        logger.exception(f"Error in tool {name}")
        return [TextContent(type="text", text=f"Error: {type(e).__name__}")]


# ============================================================================
# MAIN
# ============================================================================

async def main():
    logging.basicConfig(level=logging.INFO)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main_sync():
    """Synchronous entry point for use as a console script."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    main_sync()
