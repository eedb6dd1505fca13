"""Adapters for the external services the engine calls."""

from codedrift.clients.base import CommitInfo, LanguageModelClient, RepositoryInfo, VcsClient
from codedrift.clients.github import GitHubClient
from codedrift.clients.llm import OpenAIChatClient, build_analysis_prompt, extract_json

__all__ = [
    "CommitInfo",
    "GitHubClient",
    "LanguageModelClient",
    "OpenAIChatClient",
    "RepositoryInfo",
    "VcsClient",
    "build_analysis_prompt",
    "extract_json",
]
