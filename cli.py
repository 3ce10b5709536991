#!/usr/bin/env python
"""
Command-line interface for Site Suitability

Usage:
    python cli.py develop --input site.geojson --output developable.geojson
    python cli.py score --input site.geojson --output report.json
    python cli.py batch --input ./sites/ --output ./reports/
"""

import os
import sys
import json
import time
import argparse
from datetime import datetime

from dotenv import load_dotenv
from loguru import logger

from site_suitability.config import PipelineConfig, validate_config
from site_suitability.exceptions import ConfigurationError
from site_suitability.collectors import StaticFeatureSource, ArcGISFeatureCollector
from site_suitability.analysis import DevelopableAreaBuilder
from site_suitability.pipeline import SiteSuitabilityPipeline


def setup_logging(verbose: bool = False):
    """Configure logging"""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>",
        level=level
    )


def load_config() -> PipelineConfig:
    """Build configuration after loading .env (ARCGIS_TOKEN)"""
    load_dotenv(override=False)  # Don't override existing env vars
    config = PipelineConfig()
    validate_config(config)
    return config


def read_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def offline_source(args):
    """StaticFeatureSource from --layers, or None for live ArcGIS layers"""
    if not getattr(args, "layers", None):
        return None
    layers = read_json(args.layers)
    logger.info(f"Offline mode: {len(layers)} layer(s) from {args.layers}")
    return StaticFeatureSource(layers)


def cmd_develop(args):
    """Generate the developable area for a site boundary"""
    setup_logging(args.verbose)

    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        config = load_config()
        site = read_json(args.input)
        source = offline_source(args)
        if source is None:
            source = ArcGISFeatureCollector(cache_dir=args.cache_dir, config=config)

        builder = DevelopableAreaBuilder(source=source, config=config)
        result = builder.build_sync(site)

        output_path = args.output or f"developable_{datetime.now().strftime('%Y%m%d_%H%M%S')}.geojson"
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.to_feature_collection(), f, indent=2, ensure_ascii=False)

        logger.info(f"✓ Generated: {output_path}")
        logger.info(f"  Parts: {len(result.parts)}")
        logger.info(f"  Developable Area: {result.total_area_sqm:.1f} sqm")
        if result.fallback:
            logger.warning("  Original boundary used (fallback)")
        if result.estimated:
            logger.warning("  Area includes estimated subtractions")
        return 0

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except Exception as e:
        logger.error(f"Failed to generate developable area: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def cmd_score(args):
    """Generate the full suitability report for a site boundary"""
    setup_logging(args.verbose)

    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        return 1

    output_path = args.output or f"report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"

    try:
        config = load_config()
        config.concurrent_scoring = args.concurrent
        site = read_json(args.input)
        pipeline = SiteSuitabilityPipeline(config=config, cache_dir=args.cache_dir, source=offline_source(args))

        report = pipeline.run(site, report_id=args.report_id)
        pipeline.save(report, output_path)

        logger.info(f"✓ Generated: {output_path}")
        logger.info(f"  Report ID: {report.report_id}")
        logger.info(f"  Developable Area: {report.developable_area.total_area_sqm} sqm")
        logger.info(f"  Score: {report.scores.total}/{report.scores.max} ({report.scores.percentage}%)")

        if args.summary:
            summary = {
                "report_id": report.report_id,
                "developable_area_sqm": report.developable_area.total_area_sqm,
                "parts": len(report.developable_area.features),
                "criteria": {c.name: c.score for c in report.scores.criteria},
                "total": report.scores.total,
                "max": report.scores.max,
                "percentage": report.scores.percentage,
                "missing_data": report.data_quality.missing_data,
            }
            print(json.dumps(summary, indent=2))

        return 0

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except Exception as e:
        logger.error(f"Failed to generate report: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def cmd_batch(args):
    """Generate reports for every GeoJSON file in a directory"""
    setup_logging(args.verbose)

    if not os.path.isdir(args.input):
        logger.error(f"Input directory not found: {args.input}")
        return 1

    inputs = sorted(
        os.path.join(args.input, name) for name in os.listdir(args.input)
        if name.endswith((".geojson", ".json"))
    )
    if not inputs:
        logger.error("No GeoJSON files found in input directory")
        return 1

    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Processing {len(inputs)} sites...")
    os.makedirs(args.output, exist_ok=True)

    pipeline = SiteSuitabilityPipeline(config=config, cache_dir=args.cache_dir, source=offline_source(args))
    success = 0
    failed = 0

    for i, path in enumerate(inputs, 1):
        name = os.path.splitext(os.path.basename(path))[0]
        logger.info(f"[{i}/{len(inputs)}] {name}")

        try:
            report = pipeline.run(read_json(path))
            filepath = os.path.join(args.output, f"{name.replace(' ', '_').lower()}_report.json")
            pipeline.save(report, filepath)
            logger.info(f"  ✓ {os.path.basename(filepath)} ({report.scores.total}/{report.scores.max})")
            success += 1

        except Exception as e:
            logger.error(f"  ✗ Failed: {e}")
            failed += 1

        # Rate limiting
        if i < len(inputs) and args.delay:
            time.sleep(args.delay)

    logger.info(f"\nComplete: {success} succeeded, {failed} failed")
    return 0 if failed == 0 else 1


def main():
    parser = argparse.ArgumentParser(
        description="Site Suitability CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Generate developable area:
    python cli.py develop --input site.geojson --output developable.geojson

  Generate suitability report offline from saved layers:
    python cli.py score --input site.geojson --layers layers.json --summary

  Batch generate from a directory of sites:
    python cli.py batch --input ./sites/ --output ./reports/
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Develop command
    dev_parser = subparsers.add_parser("develop", help="Generate developable area for a site")
    dev_parser.add_argument("--input", "-i", required=True, help="Site boundary GeoJSON file")
    dev_parser.add_argument("--output", "-o", help="Output GeoJSON file")
    dev_parser.add_argument("--layers", "-l", help="JSON file of layer name -> FeatureCollection (offline mode)")
    dev_parser.add_argument("--cache-dir", help="Cache directory for ArcGIS responses")
    dev_parser.set_defaults(func=cmd_develop)

    # Score command
    score_parser = subparsers.add_parser("score", help="Generate suitability report for a site")
    score_parser.add_argument("--input", "-i", required=True, help="Site boundary GeoJSON file")
    score_parser.add_argument("--output", "-o", help="Output JSON file")
    score_parser.add_argument("--layers", "-l", help="JSON file of layer name -> FeatureCollection (offline mode)")
    score_parser.add_argument("--cache-dir", help="Cache directory for ArcGIS responses")
    score_parser.add_argument("--report-id", help="Custom report ID")
    score_parser.add_argument("--concurrent", action="store_true", help="Score criteria concurrently")
    score_parser.add_argument("--summary", "-s", action="store_true", help="Print summary to stdout")
    score_parser.set_defaults(func=cmd_score)

    # Batch command
    batch_parser = subparsers.add_parser("batch", help="Batch generate reports from a directory")
    batch_parser.add_argument("--input", "-i", required=True, help="Directory of site GeoJSON files")
    batch_parser.add_argument("--output", "-o", default="output", help="Output directory")
    batch_parser.add_argument("--layers", "-l", help="JSON file of layer name -> FeatureCollection (offline mode)")
    batch_parser.add_argument("--cache-dir", help="Cache directory for ArcGIS responses")
    batch_parser.add_argument("--delay", type=float, default=2.0, help="Delay between sites (seconds)")
    batch_parser.set_defaults(func=cmd_batch)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
