#!/usr/bin/env python3
"""
BMI vs. Hypertension Analysis on a FHIR Server

Downloads body weight and height Observations, computes each patient's
BMI, checks which patients have hypertension (ICD-10 I10-I15) recorded as
a comorbidity of an Encounter, and plots BMI by hypertension status.

Usage:
    python run_analysis.py                              # Default server
    python run_analysis.py --server-url https://host/fhir
    python run_analysis.py --output results/bmi.png --csv results/bmi.csv
    python run_analysis.py --max-bundles 5 --log-level DEBUG
"""

import argparse
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import structlog

from analysis.pipeline import run_analysis
from config.config_loader import get_analysis_settings, get_logging_config, load_config
from core.exceptions import AnalysisError
from core.utils import setup_logging
from data.fhir_search import FHIRSearchClient
from visualization.bmi_plot import plot_bmi_by_comorbidity

logger = structlog.get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="BMI vs. hypertension comorbidity analysis on a FHIR R4 server"
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Path to config.yaml")
    parser.add_argument("--server-url", type=str, default=None,
                        help="FHIR server base URL")
    parser.add_argument("--max-bundles", type=int, default=None,
                        help="Maximum number of bundles per search")
    parser.add_argument("--output", type=str, default="results/bmi_hypertension.png",
                        help="Path of the plot image")
    parser.add_argument("--csv", type=str, default=None,
                        help="Also write the result table to this CSV file")
    parser.add_argument("--log-level", type=str, default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", type=str, default=None,
                        choices=["console", "json"])
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        if args.config:
            load_config(args.config)

        log_cfg = get_logging_config()
        setup_logging(
            level=args.log_level or log_cfg["level"],
            log_format=args.log_format or log_cfg["format"],
            log_file=log_cfg["file"],
        )

        settings = get_analysis_settings({
            "server_url": args.server_url,
            "max_bundles": args.max_bundles,
        })

        with FHIRSearchClient(
            auth_token=settings.auth_token,
            timeout=settings.timeout_seconds,
        ) as client:
            analysis = run_analysis(client, settings)

    except AnalysisError as e:
        logger.error("Analysis failed", **e.to_dict())
        return 1

    result = analysis.result
    print(result.to_string(index=False))

    if args.csv:
        csv_path = Path(args.csv)
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        result.to_csv(csv_path, index=False)
        logger.info("Result table saved", path=str(csv_path), rows=len(result))

    if args.output:
        plot_bmi_by_comorbidity(result, output_path=args.output, seed=settings.plot_seed)

    return 0


if __name__ == "__main__":
    sys.exit(main())
