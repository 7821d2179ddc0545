"""CI platform integration modules."""

from .runners import CIRunner, GithubRunner, GitlabRunner, derive_origin_id, get_runner

__all__ = [
    "CIRunner",
    "GithubRunner",
    "GitlabRunner",
    "derive_origin_id",
    "get_runner",
]
