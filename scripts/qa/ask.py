"""Ask the assistant from the command line against the configured knowledge base.

Usage: python scripts/qa/ask.py "ตึกวิทยาศาสตร์อยู่ที่ไหน" [--session demo] [--json]
"""
import argparse
import asyncio
import json
import os
import sys

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from pcru_faq.extensions import init_engines, shutdown_engines


async def main(args):
    engines = await init_engines(start_sweeper=False)
    try:
        for question in args.questions:
            response = await engines.policy.resolve(question, args.session, category=args.category)
            if args.json:
                print(json.dumps(response.to_payload(), ensure_ascii=False, indent=2))
                continue
            print(f"\nQUERY: {question}")
            print(f"SOURCE: {response.source} (strategy: {response.strategy or '-'})")
            print(response.message)
    finally:
        await shutdown_engines(engines)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Resolve questions through the FAQ pipeline")
    parser.add_argument("questions", nargs="+")
    parser.add_argument("--session", default="cli-session")
    parser.add_argument("--category", default=None)
    parser.add_argument("--json", action="store_true", help="print the camelCase response payload")
    asyncio.run(main(parser.parse_args()))
