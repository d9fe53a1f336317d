# krishi/cli.py - Ask the advisory pipeline a question from the command line
import argparse
import asyncio
import json
import logging
import sys

from krishi.core.config import Settings
from krishi.core.formatter import format_confidence
from krishi.core.logging_config import setup_logging
from krishi.core.rag_pipeline import AdvisoryRAGPipeline


async def ask(question: str, language=None, offline: bool = False):
    overrides = {"FORCE_OFFLINE": True} if offline else {}
    pipeline = AdvisoryRAGPipeline.create(Settings(**overrides))
    try:
        return await pipeline.advise(question, language)
    finally:
        await pipeline.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Multilingual farming advisory")
    parser.add_argument("question", help="Farming question in any supported language")
    parser.add_argument("--language", default=None, help="Response language code, detected when omitted")
    parser.add_argument("--offline", action="store_true", help="Answer without network access")
    parser.add_argument("--json", action="store_true", help="Print the full response as JSON")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    # Logs go to stderr so --json output stays parseable
    setup_logging(logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)
    response = asyncio.run(ask(args.question, args.language, args.offline))

    if args.json:
        print(json.dumps(response.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return 0

    print(response.answer_text)
    print()
    print(format_confidence(response.confidence, response.factual_basis))
    for disclaimer in response.disclaimers:
        print(f"Note: {disclaimer}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
