# services/analytics.py
"""
Usage analytics for the admin dashboard

Events, recommendation feedback and performance metrics are loaded into
pandas DataFrames and reduced to dashboard metrics, per-operation
statistics, a response-time vs. satisfaction breakdown and prioritised
recommendations. Summaries are cached in Redis when it is configured.
"""

import json
import time
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pandas as pd
import redis

from core.storage import Storage

logger = logging.getLogger(__name__)

CACHE_KEY = 'analytics:summary'
AI_OPERATION = 'ai_recommendation'

# Response-time buckets in milliseconds: (name, lower bound, upper bound)
RESPONSE_TIME_BUCKETS = [
    ('fast', 0, 3000),
    ('medium', 3000, 8000),
    ('slow', 8000, float('inf')),
]
FEEDBACK_WINDOW = pd.Timedelta(minutes=5)


@dataclass
class Metric:
    """Individual metric definition"""
    name: str
    value: float
    unit: str
    trend: Optional[str] = None  # "up", "down", "stable"
    change_percent: Optional[float] = None
    benchmark: Optional[float] = None
    status: str = "normal"  # "good", "warning", "critical"


@dataclass
class Recommendation:
    """Analytics recommendation"""
    category: str
    priority: str  # "low", "medium", "high", "critical"
    title: str
    description: str
    action: str
    impact: str
    effort: str  # "low", "medium", "high"


def is_positive(rating: int) -> bool:
    """Thumbs up (1) or four/five stars"""
    return rating == 1 or rating >= 4


def is_negative(rating: int) -> bool:
    """Thumbs down (-1) or two stars"""
    return rating == -1 or rating == 2


class AnalyticsService:
    """Builds the analytics summary from stored records"""

    BENCHMARKS = {
        'success_rate': 95.0,
        'average_response_time': 3000.0,
        'positive_rate': 70.0,
    }

    STATUS_THRESHOLDS = {
        'success_rate': {'good': 95.0, 'warning': 90.0},
        'positive_rate': {'good': 70.0, 'warning': 50.0},
        'average_response_time': {'good': 3000.0, 'warning': 8000.0},
    }

    LOWER_IS_BETTER = {'average_response_time'}

    def __init__(self, storage: Storage, redis_client: Optional[redis.Redis] = None,
                 cache_ttl: int = 300, sample_size: int = 10000):
        self.storage = storage
        self.redis_client = redis_client
        self.cache_ttl = cache_ttl
        self.sample_size = sample_size

    def get_summary(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Analytics summary for the dashboard

        Args:
            force_refresh: Skip the Redis cache

        Returns:
            Dict with metrics, eventCounts, operations,
            satisfactionByResponseTime and recommendations
        """
        if not force_refresh:
            cached = self._read_cache()
            if cached is not None:
                return cached

        start_time = time.time()
        events = self._frame(self.storage.get_analytics_events(self.sample_size), 'timestamp')
        feedback = self._frame(self.storage.get_feedback(self.sample_size), 'createdAt')
        performance = self._frame(self.storage.get_performance_metrics(self.sample_size), 'timestamp')

        metrics = self._calculate_metrics(events, feedback, performance)
        satisfaction = self._satisfaction_by_response_time(performance, feedback)
        summary = {
            'generatedAt': datetime.now(timezone.utc).isoformat(),
            'metrics': {key: asdict(metric) for key, metric in metrics.items()},
            'eventCounts': self._event_counts(events),
            'operations': self._operation_stats(performance),
            'satisfactionByResponseTime': satisfaction,
            'recommendations': [asdict(r) for r in self._generate_recommendations(metrics, satisfaction)],
        }

        self._write_cache(summary)
        logger.info(f"Analytics summary generated in {time.time() - start_time:.2f}s")
        return summary

    @staticmethod
    def _frame(records: List[Dict[str, Any]], time_column: str) -> pd.DataFrame:
        df = pd.DataFrame(records)
        if not df.empty and time_column in df:
            df[time_column] = pd.to_datetime(df[time_column], errors='coerce')
        return df

    def _calculate_metrics(self, events: pd.DataFrame, feedback: pd.DataFrame,
                           performance: pd.DataFrame) -> Dict[str, Metric]:
        metrics = {
            'total_events': Metric(name='Total Events', value=float(len(events)), unit='events'),
            'total_feedback': Metric(name='Feedback Received', value=float(len(feedback)), unit='ratings'),
        }

        if not feedback.empty:
            positive = int(feedback['rating'].apply(is_positive).sum())
            negative = int(feedback['rating'].apply(is_negative).sum())
            metrics['positive_ratings'] = Metric(name='Positive Ratings', value=float(positive), unit='ratings')
            metrics['negative_ratings'] = Metric(name='Negative Ratings', value=float(negative), unit='ratings')
            if positive + negative:
                rate = positive / (positive + negative) * 100
                metrics['positive_rate'] = self._rated_metric('positive_rate', 'Positive Rating Rate', rate, '%')

        if not performance.empty:
            metrics['average_response_time'] = self._rated_metric(
                'average_response_time', 'Average Response Time',
                float(performance['responseTime'].mean()), 'ms')
            metrics['success_rate'] = self._rated_metric(
                'success_rate', 'Success Rate', float(performance['success'].mean() * 100), '%')

        return metrics

    def _rated_metric(self, key: str, name: str, value: float, unit: str) -> Metric:
        return Metric(name=name, value=round(value, 2), unit=unit,
                      benchmark=self.BENCHMARKS.get(key), status=self._get_metric_status(key, value))

    def _get_metric_status(self, metric_name: str, value: float) -> str:
        thresholds = self.STATUS_THRESHOLDS.get(metric_name)
        if not thresholds:
            return 'normal'

        if metric_name in self.LOWER_IS_BETTER:
            if value <= thresholds['good']:
                return 'good'
            elif value <= thresholds['warning']:
                return 'warning'
            return 'critical'

        if value >= thresholds['good']:
            return 'good'
        elif value >= thresholds['warning']:
            return 'warning'
        return 'critical'

    @staticmethod
    def _event_counts(events: pd.DataFrame) -> Dict[str, int]:
        if events.empty:
            return {}
        return {str(k): int(v) for k, v in events['eventType'].value_counts().items()}

    @staticmethod
    def _operation_stats(performance: pd.DataFrame) -> List[Dict[str, Any]]:
        if performance.empty:
            return []
        grouped = performance.groupby('operation').agg(
            total=('responseTime', 'size'),
            averageResponseTime=('responseTime', 'mean'),
            successRate=('success', 'mean'),
        ).reset_index()
        return [{
            'operation': row.operation,
            'count': int(row.total),
            'averageResponseTime': round(float(row.averageResponseTime), 2),
            'successRate': round(float(row.successRate) * 100, 2),
        } for row in grouped.itertuples(index=False)]

    @staticmethod
    def _satisfaction_by_response_time(performance: pd.DataFrame,
                                       feedback: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
        """
        Pair successful AI recommendation timings with feedback given within
        five minutes and report the positive share per response-time bucket
        """
        result = {name: {'samples': 0, 'satisfactionRate': None} for name, _, _ in RESPONSE_TIME_BUCKETS}
        if performance.empty or feedback.empty:
            return result

        ai = performance[(performance['operation'] == AI_OPERATION) & performance['success']]
        ai = ai.dropna(subset=['timestamp']).sort_values('timestamp')
        ratings = feedback[['createdAt', 'rating']].dropna(subset=['createdAt']).sort_values('createdAt')
        if ai.empty or ratings.empty:
            return result

        paired = pd.merge_asof(ai, ratings, left_on='timestamp', right_on='createdAt',
                               direction='nearest', tolerance=FEEDBACK_WINDOW)
        paired = paired.dropna(subset=['rating'])

        for name, lower, upper in RESPONSE_TIME_BUCKETS:
            bucket = paired[(paired['responseTime'] >= lower) & (paired['responseTime'] < upper)]
            if len(bucket):
                rate = bucket['rating'].apply(is_positive).mean() * 100
                result[name] = {'samples': int(len(bucket)), 'satisfactionRate': round(float(rate), 1)}
        return result

    @staticmethod
    def _generate_recommendations(metrics: Dict[str, Metric],
                                  satisfaction: Dict[str, Dict[str, Any]]) -> List[Recommendation]:
        recommendations = []

        success_rate = metrics.get('success_rate')
        if success_rate and success_rate.value < 95:
            recommendations.append(Recommendation(
                category='reliability',
                priority='critical' if success_rate.value < 90 else 'high',
                title='Recommendation Failures Detected',
                description=f'Success rate is {success_rate.value:.1f}%, below the 95% target',
                action='Check OpenAI availability and recent error messages in performance metrics',
                impact='High - users fall back to template gifts',
                effort='medium'
            ))

        response_time = metrics.get('average_response_time')
        if response_time and response_time.value > 8000:
            recommendations.append(Recommendation(
                category='performance',
                priority='high',
                title='Slow Recommendations',
                description=f'Average response time is {response_time.value / 1000:.1f}s',
                action='Enable fewer image lookups or reduce the number of requested ideas',
                impact='Medium - slow answers lower satisfaction',
                effort='low'
            ))

        positive_rate = metrics.get('positive_rate')
        total_feedback = metrics.get('total_feedback')
        if positive_rate and total_feedback and total_feedback.value >= 5 and positive_rate.value < 70:
            recommendations.append(Recommendation(
                category='quality',
                priority='medium',
                title='Low Recommendation Satisfaction',
                description=f'Only {positive_rate.value:.0f}% of rated recommendations were positive',
                action='Review negative feedback and adjust the recommendation prompt',
                impact='High - drives return visits',
                effort='medium'
            ))

        slow = satisfaction.get('slow') or {}
        if slow.get('samples') and slow.get('satisfactionRate') is not None and slow['satisfactionRate'] < 70:
            recommendations.append(Recommendation(
                category='performance',
                priority='medium',
                title='Slow Responses Hurt Satisfaction',
                description=f"Responses over 8s are rated positively {slow['satisfactionRate']:.0f}% of the time",
                action='Cache recommendations for repeated friend profiles',
                impact='Medium',
                effort='medium'
            ))

        priority_order = {'critical': 0, 'high': 1, 'medium': 2, 'low': 3}
        return sorted(recommendations, key=lambda r: priority_order[r.priority])

    def _read_cache(self) -> Optional[Dict[str, Any]]:
        if self.redis_client is None:
            return None
        try:
            cached = self.redis_client.get(CACHE_KEY)
        except redis.RedisError as e:
            logger.warning(f"Analytics cache read failed: {str(e)}")
            return None
        if not cached:
            return None
        logger.debug("Returning cached analytics summary")
        return json.loads(cached)

    def _write_cache(self, summary: Dict[str, Any]):
        if self.redis_client is None:
            return
        try:
            self.redis_client.setex(CACHE_KEY, self.cache_ttl, json.dumps(summary, default=str))
        except redis.RedisError as e:
            logger.warning(f"Failed to cache analytics: {str(e)}")

    def invalidate(self):
        if self.redis_client is None:
            return
        try:
            self.redis_client.delete(CACHE_KEY)
        except redis.RedisError as e:
            logger.warning(f"Failed to invalidate analytics cache: {str(e)}")


def get_analytics_service() -> AnalyticsService:
    from flask import current_app
    from core.storage import get_storage
    return AnalyticsService(get_storage(),
                            redis_client=current_app.extensions.get('redis'),
                            cache_ttl=current_app.config.get('ANALYTICS_CACHE_TTL', 300))
