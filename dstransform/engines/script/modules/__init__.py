"""
Host modules bound into transformation scripts: dataset, env, http, repo, log,
plus the commit and error builtins.
"""

from dstransform.engines.script.modules.commit import Commit, error
from dstransform.engines.script.modules.dataset import DatasetGateway, make_dataset_module
from dstransform.engines.script.modules.env import make_env_module
from dstransform.engines.script.modules.http import HttpModule, make_http_module
from dstransform.engines.script.modules.log import make_log_module
from dstransform.engines.script.modules.repo import DatasetLoader, make_repo_module

__all__ = [
    "Commit",
    "error",
    "DatasetGateway",
    "DatasetLoader",
    "HttpModule",
    "make_dataset_module",
    "make_env_module",
    "make_http_module",
    "make_log_module",
    "make_repo_module",
]
