"""
daemon_service.py
Report the progress of an import to the XTENS daemon endpoint, one daemon
per processed file.
"""

import logging
from datetime import datetime, timezone

import requests
from dateutil import parser as date_parser

from . import settings

INITIALIZING = "initializing"
RUNNING = "running"
ERROR = "error"
SUCCESS = "success"


def _now():
    return datetime.now(timezone.utc).isoformat()


def compute_percentage(info):
    total = info.get('totalRows') or 0
    if not total:
        return 0
    return round((info.get('processedRows') or 0) / total * 100)


class DaemonService:
    def __init__(self, base_url=settings.DAEMON_BASE_URL,
                 bearer_token=settings.BEARER_TOKEN,
                 timeout=settings.HTTP_TIMEOUT,
                 logger=None):
        self.base_url = base_url.rstrip('/')
        self.bearer_token = bearer_token
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def get_headers(self):
        return {'Authorization': 'Bearer ' + self.bearer_token}

    def get_uri(self, daemon=None):
        uri = self.base_url + '/daemon'
        if daemon is not None:
            uri = uri + '/' + str(daemon['id'])
        return uri

    def put_daemon(self, daemon):
        daemon['updatedAt'] = _now()
        uri = self.get_uri(daemon)
        self.logger.debug('put_daemon: [' + uri + '] status: [' + daemon['status'] + ']')
        response = requests.put(uri, json=daemon, headers=self.get_headers(), timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def initialize_daemon(self, source, info=None, operator=None, process_id=None):
        """
         create a daemon for source (usually a file name) in 'initializing' status
        """
        info = info or {}
        total_rows = info.get('totalRows') or 0
        processed_rows = info.get('processedRows') or 0
        daemon = {
            'pid': process_id,
            'source': source,
            'operator': operator,
            'info': {
                'totalRows': total_rows,
                'processedRows': processed_rows,
                'notProcessedRows': info.get('notProcessedRows') or [],
                'percentage': compute_percentage({'totalRows': total_rows, 'processedRows': processed_rows}),
                'error': "",
            },
            'status': INITIALIZING,
            'createdAt': _now(),
            'updatedAt': _now(),
        }
        uri = self.get_uri()
        self.logger.info('initialize_daemon: [' + str(source) + ']')
        response = requests.post(uri, json=daemon, headers=self.get_headers(), timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def update_daemon(self, daemon):
        daemon['info']['percentage'] = compute_percentage(daemon['info'])
        daemon['status'] = RUNNING
        return self.put_daemon(daemon)

    def error_daemon(self, daemon, error=None):
        if not error:
            error = "Error during data import"
            if daemon.get('source'):
                error = error + ": " + str(daemon['source'])
        self.logger.error('error_daemon: [' + str(daemon.get('source')) + '] ' + str(error))
        daemon['info']['error'] = str(error)
        daemon['status'] = ERROR
        return self.put_daemon(daemon)

    def success_daemon(self, daemon):
        created_at = date_parser.isoparse(daemon['createdAt'])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        elapsed = datetime.now(timezone.utc) - created_at
        daemon['info']['elapsedTime'] = round(elapsed.total_seconds())
        daemon['info']['percentage'] = compute_percentage(daemon['info'])
        daemon['status'] = SUCCESS
        return self.put_daemon(daemon)
