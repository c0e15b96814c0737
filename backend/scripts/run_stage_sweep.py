#!/usr/bin/env python3
"""
Run one strategic plan stage sweep and exit.

For deployments that schedule sweeps from cron instead of running the
in-process worker (PLAN_WORKER_ENABLED=false). Safe to run while API
processes are sweeping too.

Usage:
    python run_stage_sweep.py [--batch-size N]
"""

import argparse
import json
import logging
import sys

from grassroots.controllers.helpers.errors import ServiceError
from grassroots.controllers.helpers.strategic_plans import evaluate_due_transitions


def main():
    parser = argparse.ArgumentParser(description='Advance strategic plans whose stage deadline has passed')
    parser.add_argument('--batch-size', type=int, help='Max plans to evaluate in this run')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        summary = evaluate_due_transitions(batch_size=args.batch_size)
    except ServiceError as e:
        print(f"Sweep failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 1 if summary["errors"] else 0


if __name__ == '__main__':
    sys.exit(main())
