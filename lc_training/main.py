"""
Learning Curve Training Pipeline - Main Orchestrator

This script orchestrates the learning curve pipeline:
1. Setup validation
2. Document and task configuration loading
3. Fold/portion training, holdout prediction and metric aggregation
4. Report generation
"""

import argparse
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from lc_training.modules.data_loader import DocumentLoader, load_task_config
from lc_training.modules.learning_curve_trainer import LearningCurveAlloy, LearningCurveTrainer
from lc_training.modules.xgboost_trainer import XGBoostAlloyTrainer
from lc_training.utils.helpers import format_time, load_config
from lc_training.utils.logger import setup_logger, log_phase_start, log_phase_complete
from lc_training.utils.metrics import generate_learning_curve_report


class LearningCurvePipeline:
    """Main learning curve pipeline orchestrator"""

    def __init__(self, config: Dict[str, Any], name: str = 'learning-curve'):
        """
        Initialize the pipeline.

        Args:
            config: Validated configuration dictionary
            name: A user-friendly name for the run
        """
        self.config = config
        self.name = name
        self.logger = setup_logger(self.config)

        lc_config = self.config['learning_curve']
        self.logger.info("=" * 80)
        self.logger.info("LEARNING CURVE PIPELINE INITIALIZED")
        self.logger.info("=" * 80)
        self.logger.info(f"Run name: {name}")
        self.logger.info(f"Folds: {lc_config['num_folds']}")
        self.logger.info(f"Portions: {lc_config['portions']}")
        self.logger.info(f"Fold seed: {lc_config['fold_seed']}")
        self.logger.info(f"Failure policy: {lc_config.get('failure_policy', 'abort')}")
        self.logger.info("=" * 80)

    @classmethod
    def from_file(cls, config_path: str, name: str = 'learning-curve') -> "LearningCurvePipeline":
        return cls(load_config(config_path), name=name)

    def run(self) -> Dict[str, Any]:
        """Run the complete pipeline"""
        start_time = time.time()

        try:
            self._validate_setup()
            docs, task_config = self._phase1_load_data()
            alloy = self._phase2_learning_curves(docs, task_config)

            duration = format_time(time.time() - start_time)
            report = generate_learning_curve_report(alloy.to_report(), self.config, duration)
            self._save_report(report)

            self.logger.info("=" * 80)
            self.logger.info("LEARNING CURVE PIPELINE COMPLETED SUCCESSFULLY")
            self.logger.info("=" * 80)
            self.logger.info(f"Total time: {duration}")
            self.logger.info("=" * 80)

            return report

        except Exception as e:
            self.logger.error("=" * 80)
            self.logger.error(f"PIPELINE FAILED: {str(e)}")
            self.logger.error("=" * 80)
            self.logger.exception("Full traceback:")
            raise

    def _validate_setup(self):
        """Validate that the configured inputs exist"""
        log_phase_start(self.logger, "Phase 0", "Setup Validation")

        for key in ('path', 'task_config'):
            path = self.config['dataset'][key]
            if not os.path.exists(path):
                raise FileNotFoundError(f"dataset.{key} not found: {path}")

        Path(self.config['output']['base_dir']).mkdir(parents=True, exist_ok=True)

        log_phase_complete(self.logger, "Phase 0", {"status": "validated"})

    def _phase1_load_data(self):
        """Phase 1: Load documents and task configuration"""
        log_phase_start(self.logger, "Phase 1", "Data Loading")

        task_config = load_task_config(self.config['dataset']['task_config'])
        docs = DocumentLoader(self.config).load()

        metrics = {
            "documents": sum(1 for _ in docs()),
            "labels": len(task_config.labels),
            "task_type": task_config.task_type.value,
        }

        log_phase_complete(self.logger, "Phase 1", metrics)
        return docs, task_config

    def _phase2_learning_curves(self, docs, task_config) -> LearningCurveAlloy:
        """Phase 2: Train fold/portion models and aggregate learning curves"""
        log_phase_start(self.logger, "Phase 2", "Learning Curve Training")

        trainer = XGBoostAlloyTrainer(self.config, self.logger)
        lc_trainer = LearningCurveTrainer.from_config(self.config, trainer, self.logger)
        alloy = lc_trainer.train_alloy(self.name, docs, task_config)

        metrics = {
            "labels": len(alloy.summaries),
            "averaged_points": len(alloy.averaged),
            "failed_units": len(alloy.failures),
        }

        log_phase_complete(self.logger, "Phase 2", metrics)
        return alloy

    def _save_report(self, report: Dict[str, Any]) -> str:
        """Save final training report"""
        report_path = os.path.join(
            self.config['output']['base_dir'],
            self.config['output']['report_name']
        )

        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2)

        self.logger.info(f"Report saved to: {report_path}")
        return report_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Learning Curve Training Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with the default configuration
  lc-train --config config.yaml

  # Override the documents and task configuration
  lc-train --config config.yaml --data docs.jsonl --task-config task.json

  # Validate configuration only
  lc-train --config config.yaml --dry-run
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--name',
        type=str,
        default='learning-curve',
        help='Name of the run, used in logs and the report'
    )

    parser.add_argument(
        '--data',
        type=str,
        help='Newline-delimited JSON documents (overrides config file)'
    )

    parser.add_argument(
        '--task-config',
        type=str,
        help='JSON label and rule configuration (overrides config file)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help='Custom output directory (overrides config file)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate configuration without training'
    )

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    if not os.path.exists(args.config):
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        config = load_config(args.config)
    except (ValueError, yaml.YAMLError) as e:
        print(f"Error: Invalid configuration: {e}")
        return 1

    if args.data:
        config['dataset']['path'] = args.data
    if args.task_config:
        config['dataset']['task_config'] = args.task_config
    if args.output_dir:
        config['output']['base_dir'] = args.output_dir

    if args.dry_run:
        print("✓ Configuration validated successfully")
        print(f"  Dataset: {config['dataset']['path']}")
        print(f"  Task config: {config['dataset']['task_config']}")
        print(f"  Output: {config['output']['base_dir']}")
        return 0

    pipeline = LearningCurvePipeline(config, name=args.name)

    try:
        pipeline.run()
    except KeyboardInterrupt:
        print("\n\nTraining interrupted by user")
        return 1
    except Exception as e:
        print(f"\n\nTraining failed: {str(e)}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
