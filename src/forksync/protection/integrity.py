"""Protected feature integrity checks."""

from __future__ import annotations

from collections.abc import Iterable

from forksync.core.log import logger
from forksync.core.models import ConflictKind, ConflictRisk, FeatureStatus
from forksync.protection.registry import ProtectedPathSet


class FeatureIntegrityChecker:
    """Decide whether a change set touches or breaks the protected feature.

    The checker reads the repository only through the gateway: to
    list a tree when the caller has none, and to count fork URL
    markers.
    """

    def __init__(self, gateway, ref: str | None = None):
        """Initialize checker.

        Args:
            gateway: RepositoryGateway used for tree listings
            ref: Tree to inspect when validate() gets none
                (default: the gateway's primary branch)
        """
        self.gateway = gateway
        self.ref = ref or getattr(gateway, "primary_branch", "HEAD")

    def validate(
        self,
        protected_paths: ProtectedPathSet,
        changed_files: Iterable[str],
        tree_files: Iterable[str] | None = None,
        conflicts: Iterable = (),
        ref: str | None = None,
    ) -> FeatureStatus:
        """Check a change set against the protected area.

        Args:
            protected_paths: Registry of the fork's feature
            changed_files: Paths the change set modifies
            tree_files: Post-merge tree listing; listed from ``ref``
                through the gateway when omitted
            conflicts: Conflicts (anything with a ``path``) from the
                trial merge of the same change set
            ref: Tree to list and grep (default: the checker's ref)

        Returns:
            FeatureStatus. Risk is HIGH when a critical file is missing
            or a protected path has a content conflict, MEDIUM when a
            declared dependency changed, LOW otherwise.
        """
        ref = ref or self.ref
        changed_files = list(changed_files)
        if tree_files is None:
            tree_files = self.gateway.tree_files(ref)
        tree = set(tree_files)

        missing = [f for f in protected_paths.critical_files if f not in tree]
        changed_protected = protected_paths.protected(changed_files)
        changed_deps = protected_paths.dependencies(changed_files)
        protected = [c for c in conflicts if protected_paths.is_protected(c.path)]
        protected_conflicts = sorted({c.path for c in protected})
        # Only content conflicts on protected paths raise the risk
        content_conflict = any(
            getattr(c, "kind", ConflictKind.CONTENT) == ConflictKind.CONTENT
            for c in protected
        )

        if missing or content_conflict:
            risk = ConflictRisk.HIGH
        elif changed_deps:
            risk = ConflictRisk.MEDIUM
        else:
            risk = ConflictRisk.LOW

        url_count, urls_valid = self._check_fork_urls(protected_paths, ref)

        status = FeatureStatus(
            critical_files_intact=not missing,
            dependencies_healthy=not changed_deps,
            risk_assessment=risk,
            missing_files=missing,
            changed_protected_files=changed_protected,
            changed_dependencies=changed_deps,
            protected_conflicts=protected_conflicts,
            fork_urls_valid=urls_valid,
            fork_url_count=url_count,
        )

        if missing:
            logger.error("Critical feature files missing", files=missing)
        if not urls_valid:
            logger.warn(
                "Fork URL references below minimum",
                found=url_count,
                minimum=protected_paths.min_fork_url_count,
            )
        logger.info(
            "Feature integrity checked",
            risk=risk.value,
            changed_protected=len(changed_protected),
            changed_dependencies=len(changed_deps),
        )
        return status

    def _check_fork_urls(
        self, protected_paths: ProtectedPathSet, ref: str
    ) -> tuple[int, bool]:
        if not protected_paths.fork_specific_urls:
            return 0, True
        roots = protected_paths.search_roots()
        count = sum(
            self.gateway.count_matches(ref, url.pattern, roots)
            for url in protected_paths.fork_specific_urls
        )
        return count, count >= protected_paths.min_fork_url_count
