"""
Training data services.

This package provides:
- The bounded durable log of user-judged comparison sessions
- Statistics computed over that log
"""
from services.training.TrainingDataStore import TrainingDataStore
from services.training.statistics import StatisticsAggregator, TrainingStats, compute_statistics, categorize_question

__all__ = [
    'TrainingDataStore',
    'StatisticsAggregator',
    'TrainingStats',
    'compute_statistics',
    'categorize_question'
]
