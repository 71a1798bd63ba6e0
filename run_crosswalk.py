#!/usr/bin/env python
"""
Crosswalk Pipeline CLI

Command-line interface for fitting a crosswalk and adjusting observations.

Usage:
    # Run entire pipeline
    python run_crosswalk.py --config crosswalk.yaml

    # Run specific stage
    python run_crosswalk.py --config crosswalk.yaml --stage fit

    # Validate configuration
    python run_crosswalk.py --validate crosswalk.yaml

    # Write a default configuration to edit
    python run_crosswalk.py --write-default-config crosswalk.yaml \\
        --data data/matched_pairs.csv --gold measured
"""

import argparse
import sys
from pathlib import Path

# Add current directory to path
sys.path.insert(0, str(Path(__file__).parent))

from crosswalk import (
    CrosswalkConfig,
    CrosswalkError,
    CrosswalkPipeline,
    create_default_config,
)


def load_config(config_path: str) -> CrosswalkConfig:
    """
    Load configuration from a YAML or JSON file.

    Args:
        config_path: Path to configuration file

    Returns:
        CrosswalkConfig instance
    """
    suffix = Path(config_path).suffix.lower()
    print(f"\nLoading configuration from: {config_path}")

    if suffix == '.json':
        return CrosswalkConfig.from_json(config_path)
    if suffix not in ('.yaml', '.yml'):
        print(f"  Warning: Unknown file type '{suffix}', attempting YAML")
    return CrosswalkConfig.from_yaml(config_path)


def run_stage(config_path: str, stage: str) -> None:
    """Run the pipeline up to and including one stage."""
    config = load_config(config_path)
    pipeline = CrosswalkPipeline(config)

    valid_stages = ['load', 'fit', 'adjust', 'all']
    if stage not in valid_stages:
        print(f"Error: Invalid stage '{stage}'. Valid stages: {', '.join(valid_stages)}")
        sys.exit(1)

    try:
        if stage == 'all':
            paths = pipeline.run_all()
            print("\n✓ Pipeline completed successfully!")
            for kind, path in paths.items():
                print(f"  {kind}: {path}")
            return

        pipeline.load_data()
        if stage in ('fit', 'adjust'):
            pipeline.fit()
        if stage == 'adjust':
            pipeline.adjust()
        if stage != 'load':
            pipeline.export_all()
        print(f"\n✓ Stage '{stage}' completed successfully!")

    except CrosswalkError as e:
        print(f"\n{e}")
        sys.exit(1)
    except RuntimeError as e:
        print(f"\nError: {e}")
        sys.exit(1)


def validate_config(config_path: str) -> None:
    """Validate configuration file."""
    print(f"\nValidating configuration: {config_path}")

    config = load_config(config_path)
    issues = config.validate()

    if issues:
        print("\n⚠ Configuration issues found:")
        for issue in issues:
            print(f"  - {issue}")
        sys.exit(1)

    print("\n✓ Configuration is valid!")
    print(config.summary())


def write_default_config(output_path: str, data_path: str, gold: str, adjust_path: str = None) -> None:
    """Write a default configuration file."""
    config = create_default_config(data_path, gold, adjust_source=adjust_path)
    if output_path.endswith('.json'):
        config.to_json(output_path)
    else:
        config.to_yaml(output_path)
    print(f"\n✓ Configuration saved to: {output_path}")
    print("\nNext steps:")
    print(f"  1. Review/edit column roles and terms: {output_path}")
    print(f"  2. Run pipeline: python run_crosswalk.py --config {output_path}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Crosswalk Pipeline CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_crosswalk.py --config crosswalk.yaml
  python run_crosswalk.py --config crosswalk.yaml --stage fit
  python run_crosswalk.py --validate crosswalk.yaml
  python run_crosswalk.py --write-default-config crosswalk.yaml --data pairs.csv --gold measured
        """
    )

    parser.add_argument('--config', type=str, help='Path to configuration file (YAML or JSON)')
    parser.add_argument('--stage', type=str, default='all', help='Stage to run: load, fit, adjust, all')
    parser.add_argument('--validate', type=str, metavar='CONFIG', help='Validate configuration file')
    parser.add_argument('--write-default-config', type=str, metavar='OUTPUT',
                        help='Write a default configuration file')
    parser.add_argument('--data', type=str, help='Matched comparison CSV (with --write-default-config)')
    parser.add_argument('--adjust-data', type=str, help='Raw observation CSV (with --write-default-config)')
    parser.add_argument('--gold', type=str, help='Gold-standard definition (with --write-default-config)')

    args = parser.parse_args()

    if args.validate:
        validate_config(args.validate)
    elif args.write_default_config:
        if not args.data or not args.gold:
            parser.error("--write-default-config requires --data and --gold")
        write_default_config(args.write_default_config, args.data, args.gold, args.adjust_data)
    elif args.config:
        run_stage(args.config, args.stage)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
