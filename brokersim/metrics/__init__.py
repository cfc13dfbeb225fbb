"""
Result export for brokersim runs.
"""

from brokersim.metrics.export import CSVLine, Permutation, save_results

__all__ = ['CSVLine', 'Permutation', 'save_results']
