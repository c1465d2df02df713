"""
Command-line interface for offline page translation
"""
import os
import sys
import json
import argparse
import asyncio

from clip_translate.config import (
    DEFAULT_TARGET_LANGUAGE, TRANSLATE_STRATEGY, PREMIUM_API_KEY, VALID_STRATEGIES, TranslatorConfig, DictSettings
)
from clip_translate.core.controller import PageTranslator
from clip_translate.core.document import HtmlDocument
from clip_translate.core.events import EventType
from clip_translate.utils.unified_logger import setup_cli_logger, LogType


async def run_translation(args, logger) -> int:
    document = HtmlDocument.from_file(args.input)
    settings = DictSettings({
        'translate_strategy': args.strategy,
        'premium_api_key': args.premium_api_key,
    })
    translator = PageTranslator(document, settings=settings,
                                config=TranslatorConfig(target_language=args.target_lang),
                                logger=logger)

    if args.diagnose:
        report = await translator.diagnose_provider(args.target_lang)
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        await translator.close()
        return 0 if report.any_reachable else 1

    done = asyncio.Event()
    translator.events.subscribe(EventType.SWEEP_COMPLETED, lambda event: done.set())
    translator.events.subscribe(
        EventType.PROVIDER_ERROR,
        lambda event: logger.warning(event.data.get('message', ''), LogType.ERROR_DETAIL,
                                     {'kind': event.data.get('kind')})
    )

    try:
        await translator.start(args.target_lang)
        try:
            await asyncio.wait_for(done.wait(), timeout=args.max_wait)
        except asyncio.TimeoutError:
            logger.warning(f"Stopped waiting after {args.max_wait}s; writing partial translation")
        await translator.wait_idle()

        # Serialize before the session ends: ending it restores the originals
        html = document.to_string()
        stats = translator.stats.summary()
    finally:
        await translator.close()

    with open(args.output, 'w', encoding='utf-8') as f:
        f.write(html)

    logger.info("Translation Completed", LogType.SESSION_END, {'stats': stats})
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Translate the text of an HTML page, visible content first.")
    parser.add_argument("-i", "--input", required=True, help="Path to the input HTML file.")
    parser.add_argument("-o", "--output", default=None, help="Path to the output file. If not specified, uses input filename with suffix.")
    parser.add_argument("-tl", "--target_lang", default=DEFAULT_TARGET_LANGUAGE, help=f"Target language (default: {DEFAULT_TARGET_LANGUAGE}).")
    parser.add_argument("--strategy", default=TRANSLATE_STRATEGY, choices=list(VALID_STRATEGIES) + ["gtx_first"], help=f"Provider strategy (default: {TRANSLATE_STRATEGY}).")
    parser.add_argument("--premium_api_key", default=PREMIUM_API_KEY, help="API key for the premium (LLM) provider.")
    parser.add_argument("--max-wait", type=float, default=120.0, help="Maximum seconds to wait for the page to settle (default: 120).")
    parser.add_argument("--diagnose", action="store_true", help="Probe both providers and print a report instead of translating.")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")

    args = parser.parse_args()

    if args.output is None:
        base, ext = os.path.splitext(args.input)
        args.output = f"{base}_translated_{args.target_lang.lower()}{ext or '.html'}"

    logger = setup_cli_logger(enable_colors=not args.no_color)

    if not os.path.isfile(args.input):
        parser.error(f"input file not found: {args.input}")

    try:
        sys.exit(asyncio.run(run_translation(args, logger)))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Translation failed: {str(e)}", LogType.ERROR_DETAIL, {
            'details': str(e),
        })
        sys.exit(1)
