"""
同步指标收集器
"""
import json
import threading
from typing import Dict, Any
from datetime import datetime
from collections import defaultdict, deque

from ..config.config import MonitorConfig


class MetricsCollector:
    """同步指标收集器"""

    def __init__(self, config: MonitorConfig):
        self.config = config
        self._lock = threading.Lock()

        # 同步计数器: {direction: {status: count}}
        self.sync_counters = defaultdict(lambda: defaultdict(int))

        # 错误记录
        self.errors = deque(maxlen=1000)

        # 每轮同步耗时
        self.pass_durations = deque(maxlen=1000)

        # 账本统计
        self.ledger_stats: Dict[str, Any] = {}

        self.passes = 0
        self.start_time = datetime.now()

    def record_sync(self, direction: str, status: str) -> None:
        """记录单个对象的同步结果"""
        with self._lock:
            self.sync_counters[direction][status] += 1
            self.sync_counters[direction]['total'] += 1

    def record_sync_duration(self, duration_seconds: float) -> None:
        """记录一轮同步的耗时"""
        with self._lock:
            self.passes += 1
            self.pass_durations.append({
                'duration': duration_seconds,
                'timestamp': datetime.now()
            })

    def record_error(self, error_type: str, error_message: str) -> None:
        """记录错误"""
        with self._lock:
            self.errors.append({
                'type': error_type,
                'message': error_message,
                'timestamp': datetime.now()
            })

    def update_ledger_stats(self, stats: Dict[str, Any]) -> None:
        with self._lock:
            self.ledger_stats = dict(stats)

    def get_metrics(self) -> Dict[str, Any]:
        """获取所有指标"""
        with self._lock:
            uptime = (datetime.now() - self.start_time).total_seconds()

            # 成功率
            success_rates = {}
            for direction, counters in self.sync_counters.items():
                total = counters.get('total', 0)
                success = counters.get('success', 0)
                if total > 0:
                    success_rates[direction] = round(success / total * 100, 2)
                else:
                    success_rates[direction] = 0

            # 最近 100 轮的平均耗时
            recent = [d['duration'] for d in list(self.pass_durations)[-100:]]
            avg_duration = round(sum(recent) / len(recent), 3) if recent else 0.0

            return {
                'uptime_seconds': uptime,
                'passes': self.passes,
                'sync_counters': {k: dict(v) for k, v in self.sync_counters.items()},
                'success_rates': success_rates,
                'average_pass_duration': avg_duration,
                'ledger_stats': dict(self.ledger_stats),
                'recent_errors': list(self.errors)[-10:],
                'timestamp': datetime.now().isoformat()
            }

    def get_health_status(self) -> Dict[str, Any]:
        """获取健康状态"""
        metrics = self.get_metrics()

        health_status = "healthy"
        issues = []

        # 成功率
        for direction, rate in metrics['success_rates'].items():
            if rate < 90:
                health_status = "degraded"
                issues.append(f"Low success rate for {direction}: {rate}%")

        # 待上传积压
        pending = self.ledger_stats.get('pending', 0)
        if pending > 1000:
            health_status = "unhealthy"
            issues.append(f"High upload backlog: {pending} pending entities")
        elif pending > 500:
            if health_status == "healthy":
                health_status = "degraded"
            issues.append(f"Moderate upload backlog: {pending} pending entities")

        # 错误数
        recent_errors = len(list(self.errors)[-100:])
        if recent_errors > 50:
            health_status = "unhealthy"
            issues.append(f"High error rate: {recent_errors} errors recorded recently")

        return {
            'status': health_status,
            'issues': issues,
            'metrics_summary': {
                'uptime_hours': round(metrics['uptime_seconds'] / 3600, 2),
                'success_rates': metrics['success_rates'],
                'pending': pending,
                'recent_errors': recent_errors
            }
        }

    def export_metrics(self, format: str = 'json') -> str:
        """导出指标"""
        metrics = self.get_metrics()

        if format == 'json':
            return json.dumps(metrics, ensure_ascii=False, indent=2, default=str)
        elif format == 'prometheus':
            lines = []

            lines.append('# HELP sync_uptime_seconds Sync service uptime in seconds')
            lines.append('# TYPE sync_uptime_seconds gauge')
            lines.append(f'sync_uptime_seconds {metrics["uptime_seconds"]}')

            lines.append('# TYPE sync_passes_total counter')
            lines.append(f'sync_passes_total {metrics["passes"]}')

            for direction, counters in metrics['sync_counters'].items():
                for status, count in counters.items():
                    lines.append(f'sync_total{{direction="{direction}",status="{status}"}} {count}')

            for direction, rate in metrics['success_rates'].items():
                lines.append(f'sync_success_rate{{direction="{direction}"}} {rate}')

            lines.append(f'ledger_pending_total {metrics["ledger_stats"].get("pending", 0)}')

            return '\n'.join(lines)
        else:
            raise ValueError(f"Unsupported format: {format}")
