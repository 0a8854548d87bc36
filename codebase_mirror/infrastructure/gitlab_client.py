from __future__ import annotations

import logging

import httpx

from codebase_mirror.application.rate_limiter import TokenBucketRateLimiter
from codebase_mirror.domain.entities import PageInfo, ProjectPage
from codebase_mirror.domain.errors import RemoteError
from codebase_mirror.domain.interfaces import IProjectFetcher

log = logging.getLogger(__name__)

GITLAB_GRAPHQL_URL = "https://gitlab.com/api/graphql"
PAGE_SIZE          = 100
REQUEST_TIMEOUT    = 30.0

GRAPHQL_QUERY = """
query GroupProjects($groupId: ID!, $first: Int!, $after: String) {
  group(fullPath: $groupId) {
    projects(includeSubgroups: true, first: $first, after: $after) {
      count
      pageInfo {
        endCursor
        hasNextPage
      }
      nodes {
        id
        name
        description
        fullPath
        namespace { fullPath }
        createdAt
        updatedAt
        lastActivityAt
        webUrl
        sshUrlToRepo
        forksCount
        archived
        visibility
        languages {
          name
          share
        }
        statistics {
          repositorySize
          commitCount
        }
      }
    }
  }
}
"""


class GitLabClient(IProjectFetcher):
    """
    Concrete IProjectFetcher for the GitLab GraphQL API.

    The httpx.AsyncClient and the rate limiter are injected: the caller
    owns their lifecycle, and every concurrent worker shares the same
    limiter instance. No retries happen here; a failed request surfaces
    as a RemoteError and the caller decides what to do with it.
    """

    def __init__(
        self,
        token: str,
        client: httpx.AsyncClient,
        rate_limiter: TokenBucketRateLimiter,
        graphql_url: str = GITLAB_GRAPHQL_URL,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._client       = client
        self._rate_limiter = rate_limiter
        self._graphql_url  = graphql_url
        self._page_size    = page_size
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }

    @property
    def page_size(self) -> int:
        return self._page_size

    async def fetch_page(self, group_id: str, cursor: str | None = None) -> ProjectPage:
        variables = {
            "groupId": group_id,
            "first":   self._page_size,
            "after":   cursor,
        }

        await self._rate_limiter.acquire()

        try:
            response = await self._client.post(
                self._graphql_url,
                headers=self._headers,
                json={"query": GRAPHQL_QUERY, "variables": variables},
                timeout=REQUEST_TIMEOUT,
            )
        except httpx.RequestError as exc:
            raise RemoteError(f"request to {self._graphql_url} failed: {exc}") from exc

        if not response.is_success:
            raise RemoteError(
                f"group projects query for {group_id!r} rejected: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteError("response body is not valid JSON", status_code=response.status_code) from exc
        if not isinstance(data, dict):
            raise RemoteError("response body is not a JSON object", status_code=response.status_code)

        # GraphQL reports query failures in the body of a 200 response
        if data.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in data["errors"])
            raise RemoteError(f"GraphQL errors: {messages}", status_code=response.status_code)

        try:
            group = (data.get("data") or {}).get("group")
            if group is None:
                raise RemoteError(f"group {group_id!r} not found or not visible", status_code=response.status_code)

            connection = group["projects"]
            page_info  = connection["pageInfo"]
            page = ProjectPage(
                nodes     = list(connection["nodes"] or []),
                page_info = PageInfo(
                    end_cursor    = page_info.get("endCursor"),
                    has_next_page = bool(page_info["hasNextPage"]),
                ),
                count     = connection.get("count"),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise RemoteError(f"unexpected payload shape: {exc!r}", status_code=response.status_code) from exc

        log.debug(
            "Fetched %d projects for %s | cursor=%s | next=%s",
            len(page.nodes), group_id, cursor, page.page_info.has_next_page,
        )
        return page
