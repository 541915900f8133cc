"""
Health check endpoints.

Provides /healthz and /readyz endpoints for monitoring.
"""
import logging

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connection, connections
from django.db.migrations.executor import MigrationExecutor
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)


class HealthzView(View):
    """
    Liveness endpoint.

    Returns 200 OK if the process is running. Does not check dependencies.
    """

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """
    Readiness endpoint.

    Returns 200 only when the database answers and every migration is applied;
    billing writes against a half-migrated schema would break invariants.
    """

    def get(self, request):
        checks = {
            'database': self._check_database(),
        }
        checks['migrations'] = checks['database'] and self._check_migrations()

        all_healthy = all(checks.values())

        return JsonResponse(
            {
                'status': 'ready' if all_healthy else 'not_ready',
                'checks': checks,
            },
            status=200 if all_healthy else 503,
        )

    def _check_database(self):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
            return True
        except DatabaseError as e:
            logger.error(
                'Database health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'database',
                    'error': str(e)
                }
            )
            return False

    def _check_migrations(self):
        executor = MigrationExecutor(connections[DEFAULT_DB_ALIAS])
        targets = executor.loader.graph.leaf_nodes()
        pending = executor.migration_plan(targets)
        if pending:
            logger.warning(
                'Unapplied migrations detected',
                extra={
                    'event': 'health_check_failed',
                    'check': 'migrations',
                    'pending_count': len(pending),
                }
            )
        return not pending
