"""
Logging utilities for the payout engine.
Location: backend/payout_engine/utils/logging_utils.py
"""

import os
import csv
import json
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None, json_output: bool = False):
    """
    Setup application logging with the specified configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If None, logs to console only.
        json_output: Emit one JSON object per record instead of plain text
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging_config = {
        'level': numeric_level,
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'datefmt': '%Y-%m-%d %H:%M:%S',
    }

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        logging_config['filename'] = log_file
        logging_config['filemode'] = 'a'

    logging.basicConfig(**logging_config)

    if json_output:
        for handler in logging.getLogger().handlers:
            handler.setFormatter(JsonFormatter())

    return logging.getLogger(__name__)


class CorrelationFilter(logging.Filter):
    """
    Filter that stamps every record with the payout run id
    """
    def __init__(self, correlation_id=None):
        super().__init__()
        self.correlation_id = correlation_id or datetime.now().strftime("%Y%m%d%H%M%S%f")

    def filter(self, record):
        record.correlation_id = self.correlation_id
        return True


class JsonFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging
    """
    def format(self, record):
        log_record = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno
        }

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'correlation_id'):
            log_record['correlation_id'] = record.correlation_id

        return json.dumps(log_record)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter that appends employee / period context to log messages
    """
    def __init__(self, logger, extra=None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        context_str = ' '.join(f'{k}={v}' for k, v in self.extra.items())
        return f"{msg} [{context_str}]", kwargs


class CalculationRunLogger:
    """
    Records one step per employee of a payout run and writes the run log
    as JSON and CSV when finalized.
    """
    def __init__(self, month_year: str, log_dir: str = 'logs'):
        os.makedirs(log_dir, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.base_filename = os.path.join(log_dir, f'payout_run_{month_year}_{timestamp}')

        self.log_data = {
            'month_year': month_year,
            'start_time': datetime.now().isoformat(),
            'steps': [],
            'overall_status': 'Pending',
            'total_steps': 0,
            'successful_steps': 0,
            'failed_steps': 0
        }

        self.logger = logging.getLogger(__name__)

    def log_step_start(self, step_name: str):
        self.log_data['steps'].append({
            'name': step_name,
            'start_time': datetime.now().isoformat(),
            'status': 'Running',
            'details': {},
            'warnings': [],
            'errors': []
        })
        self.log_data['total_steps'] += 1

    def log_step_warning(self, message: str):
        self.log_data['steps'][-1]['warnings'].append(message)

    def log_step_success(self, details: Dict[str, Any] = None):
        current_step = self.log_data['steps'][-1]
        current_step.update({
            'status': 'Success',
            'end_time': datetime.now().isoformat(),
            'details': details or {}
        })
        self.log_data['successful_steps'] += 1

    def log_step_failure(self, error_message: str, exception: Exception = None):
        current_step = self.log_data['steps'][-1]
        current_step.update({
            'status': 'Failed',
            'end_time': datetime.now().isoformat(),
            'errors': [
                {
                    'message': error_message,
                    'exception_type': type(exception).__name__ if exception else None,
                }
            ]
        })
        self.log_data['failed_steps'] += 1

    def finalize(self) -> Dict[str, str]:
        if self.log_data['failed_steps'] > 0:
            self.log_data['overall_status'] = 'Partial Failure'
        elif self.log_data['successful_steps'] == self.log_data['total_steps']:
            self.log_data['overall_status'] = 'Success'

        self.log_data['end_time'] = datetime.now().isoformat()

        log_files = {
            'json': f'{self.base_filename}.json',
            'csv': f'{self.base_filename}.csv'
        }

        with open(log_files['json'], 'w') as f:
            json.dump(self.log_data, f, indent=2, default=str)

        self._write_csv_log(log_files['csv'])
        self.logger.info(f"Payout run log written to {log_files['json']}")

        return log_files

    def _write_csv_log(self, csv_path: str):
        with open(csv_path, 'w', newline='') as csvfile:
            csv_writer = csv.writer(csvfile)

            csv_writer.writerow(['Employee', 'Status', 'Start Time', 'End Time', 'Total Payout USD', 'Warnings', 'Errors'])

            for step in self.log_data['steps']:
                csv_writer.writerow([
                    step.get('name', ''),
                    step.get('status', ''),
                    step.get('start_time', ''),
                    step.get('end_time', ''),
                    step.get('details', {}).get('total_payout_usd', ''),
                    ', '.join(step.get('warnings', [])),
                    ', '.join(
                        f"{err.get('message', '')} ({err.get('exception_type', '')})"
                        for err in step.get('errors', [])
                    )
                ])

            csv_writer.writerow([])
            csv_writer.writerow(['Overall Summary'])
            csv_writer.writerow(['Month', self.log_data['month_year']])
            csv_writer.writerow(['Total Employees', self.log_data['total_steps']])
            csv_writer.writerow(['Successful', self.log_data['successful_steps']])
            csv_writer.writerow(['Failed', self.log_data['failed_steps']])
            csv_writer.writerow(['Overall Status', self.log_data['overall_status']])
