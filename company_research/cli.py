#!/usr/bin/env python3
"""CLI for company research."""
import asyncio
import argparse
import sys
import time
from pathlib import Path

# Load environment before other imports
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env', override=True)

# Suppress logfire warnings
import warnings
warnings.filterwarnings('ignore', message='Logfire')

try:
    import logfire

    logfire.configure(service_name='company-research', send_to_logfire='if-token-present', console=False)
    logfire.instrument_pydantic_ai()
except Exception:
    # Keep CLI usable even when observability config is missing
    pass

from .config import Settings
from .errors import CompanyResearchError
from .events import (
    BatchCompleteEvent,
    BatchProgressEvent,
    EntityCompleteEvent,
    EntityErrorEvent,
    EntityStartEvent,
    ErrorEvent,
    ProgressEvent,
)
from .cache import freshness
from .models import BatchRequest, ResearchRequest
from .providers import default_selection
from .service import ResearchService


def print_status(msg: str):
    """Print status message."""
    print(f"\033[90m→ {msg}\033[0m", file=sys.stderr)


def on_event(event):
    if isinstance(event, ProgressEvent):
        if event.message:
            print_status(event.message)
    elif isinstance(event, ErrorEvent):
        print_status(f"warning: {event.message}")


def save_report(content: str, output_file: str):
    with open(output_file, 'w') as f:
        f.write(content)
    print(f"\n\033[90mReport saved to: {output_file}\033[0m")


async def run_research(service: ResearchService, request: ResearchRequest, output_file: str = None):
    """Run research for one company."""
    print(f"\n{'='*60}")
    print(f"  Company Research ({request.depth})")
    print(f"{'='*60}")
    print(f"\nCompany: {request.subject}\n")

    report = await service.research(request, caller='cli', on_event=on_event)

    print(f"\n{'='*60}")
    print(f"  {report.title}")
    print(f"{'='*60}\n")
    print(report.content)

    if report.sources:
        print("\nSources:")
        for i, source in enumerate(report.sources, 1):
            print(f"  [{i}] {source.title} - {source.url}")

    if output_file:
        save_report(report.content, output_file)

    return report


async def run_bulk(service: ResearchService, batch: BatchRequest, output_file: str = None):
    """Run fast research for several companies, a few at a time."""
    print(f"\n{'='*60}")
    print(f"  Bulk Company Research ({len(batch.entities)} companies)")
    print(f"{'='*60}\n")

    final = None
    async for event in service.research_batch(batch, caller='cli'):
        if isinstance(event, EntityStartEvent):
            print_status(f"Researching {event.entity}...")
        elif isinstance(event, EntityCompleteEvent):
            print_status(f"Done: {event.entity}")
        elif isinstance(event, EntityErrorEvent):
            print_status(f"Failed: {event.entity}: {event.message}")
        elif isinstance(event, BatchProgressEvent):
            print_status(f"{event.completed + event.errors}/{event.total} processed ({event.percentage}%)")
        elif isinstance(event, BatchCompleteEvent):
            final = event

    parts = []
    for result in final.results:
        if result.report is not None:
            parts.append(f"# {result.report.title}\n\n{result.report.content}")
        else:
            parts.append(f"# {result.entity}\n\nResearch failed: {result.error}")
    combined = "\n\n---\n\n".join(parts)

    print(combined)
    print(f"\n\033[90m{final.summary['completed']} completed, {final.summary['errors']} failed\033[0m")

    if output_file:
        save_report(combined, output_file)

    return final


def print_cache_stats(service: ResearchService):
    info = service.cache.info()
    stats = service.cache.stats
    print(f"Entries: {info.total_size} ({info.valid_entries} valid, {info.expired_entries} expired)")
    print(f"Hits: {stats.total_hits}  Misses: {stats.total_misses}  Hit rate: {info.hit_rate:.0%}")
    print(f"Estimated savings: ${stats.estimated_cost_savings:.2f}, {stats.estimated_token_savings} tokens")
    now = time.time()
    for entry in service.cache.valid_entries():
        print(f"  [{freshness(entry, now)}] {entry.key} ({entry.hit_count} hits)")


async def interactive_mode(service: ResearchService, depth: str, industry: str = None, models: dict = None):
    """Run in interactive mode."""
    print(f"\n{'='*60}")
    print(f"  Company Research - Interactive Mode")
    print(f"{'='*60}")
    print(f"\nDepth: {depth}")
    print("\nEnter a company name (or 'quit' to exit):\n")

    while True:
        try:
            subject = input("Company: ").strip()
            if subject.lower() in ('quit', 'q', 'exit'):
                print("\nGoodbye!")
                break

            if not subject:
                print("Please enter a company name.\n")
                continue

            await run_research(service, ResearchRequest(subject=subject, depth=depth, industry=industry, **(models or {})))
            print()

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except (CompanyResearchError, TimeoutError) as e:
            print(f"\nError: {str(e) or type(e).__name__}\n")


def main():
    parser = argparse.ArgumentParser(
        description='Company Research CLI - AI-powered investment research',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s "Acme Corp"
  %(prog)s "Acme Corp" --depth deep --industry "Developer tools" --competitor Globex
  %(prog)s -o report.md --website acme.com "Acme Corp"
  %(prog)s --bulk "Acme Corp, Globex, Initech"
  %(prog)s -i  # Interactive mode
        """
    )

    parser.add_argument(
        'subject',
        nargs='?',
        help='Company to research'
    )
    parser.add_argument(
        '-d', '--depth',
        choices=['fast', 'medium', 'deep'],
        default=None,
        help='Research depth (default: medium, fast for --bulk)'
    )
    parser.add_argument(
        '-p', '--provider',
        help='Model provider, using its default thinking and task models (default: from THINKING_PROVIDER and TASK_PROVIDER)'
    )
    parser.add_argument('--industry', help='Industry the company operates in')
    parser.add_argument('--website', help='Company website')
    parser.add_argument(
        '-c', '--competitor',
        action='append',
        default=[],
        help='Known competitor (repeatable)'
    )
    parser.add_argument(
        '--bulk',
        help='Comma-separated list of companies to research together'
    )
    parser.add_argument(
        '-o', '--output',
        help='Output file for report (markdown)'
    )
    parser.add_argument(
        '-i', '--interactive',
        action='store_true',
        help='Run in interactive mode'
    )
    parser.add_argument(
        '--cache-stats',
        action='store_true',
        help='Show result cache statistics and exit'
    )

    args = parser.parse_args()
    service = ResearchService.from_settings(Settings())
    models = {}
    if args.provider:
        models = {
            'thinking_model': default_selection(args.provider, 'thinking'),
            'task_model': default_selection(args.provider, 'task'),
        }

    try:
        if args.cache_stats:
            print_cache_stats(service)
        elif args.bulk:
            batch = BatchRequest(
                entities=tuple(name.strip() for name in args.bulk.split(',')),
                industry=args.industry,
                depth=args.depth or 'fast',
                **models,
            )
            asyncio.run(run_bulk(service, batch, args.output))
        elif args.interactive or not args.subject:
            asyncio.run(interactive_mode(service, args.depth or 'medium', args.industry, models))
        else:
            request = ResearchRequest(
                subject=args.subject,
                website=args.website,
                industry=args.industry,
                competitors=tuple(args.competitor),
                depth=args.depth or 'medium',
                **models,
            )
            asyncio.run(run_research(service, request, args.output))
    except CompanyResearchError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    except TimeoutError:
        print("\nError: research timed out", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
