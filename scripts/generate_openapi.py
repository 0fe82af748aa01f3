"""
Dump the HTTP OpenAPI document or the model-facing tool catalog.

The tool catalog is what the chat model and the voice agent see: one
function schema per registered tool.

Usage:
    python scripts/generate_openapi.py                    # OpenAPI to stdout
    python scripts/generate_openapi.py --output api.json  # Save to file
    python scripts/generate_openapi.py --tools            # Tool schemas
"""

import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.server import create_app
from core.config import AppSettings
from tools.registry import get_registry


def build_document(tools_only: bool = False) -> dict:
    if tools_only:
        registry = get_registry()
        return {
            "tools": registry.openai_tools(),
            "mutating": sorted(s.name for s in registry.specs() if s.mutating),
        }
    return create_app(settings=AppSettings()).openapi()


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Generate API or tool schemas")
    parser.add_argument("--output", "-o", help="Output file path (default: stdout)")
    parser.add_argument("--tools", action="store_true", help="Dump tool function schemas instead of OpenAPI")
    args = parser.parse_args()

    document = build_document(tools_only=args.tools)
    text = json.dumps(document, indent=2)

    if args.output:
        Path(args.output).write_text(text)
        print(f"Written to: {args.output}")
    else:
        print(text)

    if args.tools:
        print(f"\n{len(document['tools'])} tools, {len(document['mutating'])} mutating", file=sys.stderr)
    else:
        paths = document.get("paths", {})
        endpoints = sum(len(methods) for methods in paths.values())
        print(f"\n{document['info']['title']}: {len(paths)} paths, {endpoints} endpoints", file=sys.stderr)


if __name__ == "__main__":
    main()
