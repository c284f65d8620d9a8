"""Read-side reports over billing accounts."""

from .aging import AGING_BUCKETS, build_aging_detail, build_aging_report

__all__ = ["AGING_BUCKETS", "build_aging_detail", "build_aging_report"]
