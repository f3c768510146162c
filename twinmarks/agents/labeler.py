"""
AI naming of clusters with deterministic collision resolution.

One batched prompt names every uncached cluster. Name collisions inside a
batch (or with forbidden names) are resolved in order: the AI name as-is,
the name with the cluster's most frequent tag, the name with a snippet of
the first member title, and only then a numeric suffix.
"""

import re
from typing import Dict, Iterable, List, Optional, Set

from ..core.config import GENERATION_MODEL
from ..core.errors import MalformedResponse, OracleFailure
from ..core.settings import ISettingsStore
from ..util.logging import logger
from ..vector.clustering import Cluster
from .gateway import EmbeddingGateway, parse_json_response

MAX_TITLES_PER_CLUSTER = 10
CENTROID_SAMPLE_SIZE = 5
TITLE_SNIPPET_CHARS = 12
TITLE_SPLIT = re.compile(r"[\s・|/\-–—:]+")
DEFAULT_NAMING_INSTRUCTION = "Concise, descriptive category names of at most 3-4 words."


class LabelCache:
    """Cluster key -> approved name, kept across clustering runs."""

    def __init__(self, labels: Optional[Dict[str, str]] = None):
        self._labels: Dict[str, str] = dict(labels or {})

    @classmethod
    def load(cls, settings: ISettingsStore, namespace: str = "clusters") -> 'LabelCache':
        return cls(settings.get_label_cache(namespace))

    def save(self, settings: ISettingsStore, namespace: str = "clusters") -> None:
        settings.set_label_cache(self._labels, namespace)

    def get(self, key: str) -> Optional[str]:
        return self._labels.get(key)

    def set(self, key: str, name: str) -> None:
        self._labels[key] = name

    def __contains__(self, key: str) -> bool:
        return key in self._labels

    def __len__(self) -> int:
        return len(self._labels)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._labels)


def placeholder_name(cluster: Cluster) -> str:
    """Deterministic non-AI name: the most frequent tag, else the first member title."""
    tag = cluster.most_frequent_tag()
    if tag:
        return tag
    for title in cluster.titles:
        if title and title.strip():
            return title.strip()[:40]
    return f"Group {cluster.id + 1}"


def _title_snippet(title: str) -> str:
    for piece in TITLE_SPLIT.split(title or ""):
        if piece:
            return piece[:TITLE_SNIPPET_CHARS]
    return ""


def deduplicate_name(name: str, cluster: Cluster, used: Set[str]) -> str:
    """First candidate not already in `used` (compared case-insensitively)."""
    candidates = [name]

    tag = cluster.most_frequent_tag()
    if tag and tag.casefold() not in name.casefold():
        candidates.append(f"{name} ({tag})")

    for title in cluster.titles:
        snippet = _title_snippet(title)
        if snippet:
            candidates.append(f"{name} ({snippet})")
            break

    for candidate in candidates:
        if candidate.casefold() not in used:
            return candidate

    # Last resort
    suffix = 2
    while f"{name} #{suffix}".casefold() in used:
        suffix += 1
    return f"{name} #{suffix}"


def build_naming_prompt(clusters: List[Cluster], naming_instruction: Optional[str] = None,
                        forbidden_names: Iterable[str] = ()) -> str:
    sections = []
    for idx, cluster in enumerate(clusters, 1):
        lines = []
        for member in cluster.members[:MAX_TITLES_PER_CLUSTER]:
            tag_info = f" [Tags: {', '.join(member.tags)}]" if member.tags else ""
            lines.append(f" - {member.title}{tag_info}")
        centroid_info = ""
        if cluster.centroid:
            sample = ", ".join(f"{v:.4f}" for v in cluster.centroid[:CENTROID_SAMPLE_SIZE])
            centroid_info = f"\n[Semantic centroid sample: {sample}, ...]"
        sections.append(f"### Group {idx}{centroid_info}\n" + "\n".join(lines))

    forbidden = [n for n in forbidden_names if n]
    forbidden_rule = (
        f"- Never use any of these names, they are already taken: [{', '.join(forbidden)}]\n"
        if forbidden else ""
    )
    instruction = naming_instruction or DEFAULT_NAMING_INSTRUCTION

    return (
        "You organize bookmarks and visualize personal knowledge.\n"
        "Analyze each group of saved web pages below (titles, tags and a sample of the group's "
        "position in embedding space) and produce one category name per group.\n\n"
        "### Rules:\n"
        "- Each name must capture the group's main theme specifically "
        "(e.g. \"React frontend development\" rather than \"Technology\").\n"
        "- Use the page tags to make names more precise.\n"
        "- Every name must be unique; make semantically close groups distinguishable by what sets them apart.\n"
        "- Never disambiguate names with numbers such as \"(2)\" or \"#3\"; choose a more specific name instead.\n"
        f"{forbidden_rule}"
        f"- Naming rule: {instruction}\n\n"
        "### Groups:\n"
        + "\n\n".join(sections)
        + f"\n\nReply with only a JSON array of exactly {len(clusters)} strings, in group order, "
        "with no other text:\n[\"Name 1\", \"Name 2\", ...]"
    )


class LabelAssigner:
    """Names clusters through the generation oracle, reusing cached labels."""

    def __init__(self, gateway: EmbeddingGateway, model: str = GENERATION_MODEL):
        self.gateway = gateway
        self.model = model

    def request_names(self, clusters: List[Cluster], naming_instruction: Optional[str] = None,
                      forbidden_names: Iterable[str] = ()) -> List[str]:
        """One oracle call naming every cluster; any shape mismatch fails the whole batch."""
        prompt = build_naming_prompt(clusters, naming_instruction, forbidden_names)
        response = self.gateway.generate(prompt, self.model)
        names = parse_json_response(response, list)

        if len(names) != len(clusters):
            raise MalformedResponse(
                f"Response length mismatch: expected {len(clusters)} names, got {len(names)}",
                raw_text=response
            )
        if not all(isinstance(name, str) and name.strip() for name in names):
            raise MalformedResponse("Every cluster name must be a non-empty string", raw_text=response)
        return [name.strip() for name in names]

    def name_clusters(self, clusters: List[Cluster], naming_instruction: Optional[str] = None,
                      forbidden_names: Optional[Iterable[str]] = None, cache: Optional[LabelCache] = None,
                      fallback_on_error: bool = True) -> List[Cluster]:
        """Assign a unique name to every cluster in place and return the clusters.

        Clusters whose key is in `cache` keep their cached name without an
        oracle call. When the batch fails and `fallback_on_error` is set, the
        remaining clusters get placeholder names (which are not cached);
        otherwise the failure propagates.
        """
        if not clusters:
            return clusters

        forbidden = [n for n in (forbidden_names or []) if n]
        used: Set[str] = {n.casefold() for n in forbidden}

        pending: List[Cluster] = []
        for cluster in clusters:
            cached = cache.get(cluster.key) if cache is not None else None
            if cached and cached.casefold() not in used:
                cluster.name = cached
                used.add(cached.casefold())
            else:
                pending.append(cluster)

        if not pending:
            logger.log_operation("labeler.name_clusters", "cached", {"clusters": len(clusters)})
            return clusters

        taken = forbidden + [c.name for c in clusters if c.name]
        ai_named = True
        try:
            names = self.request_names(pending, naming_instruction, taken)
        except (OracleFailure, MalformedResponse) as e:
            if not fallback_on_error:
                raise
            logger.warning(f"Failed to name clusters in batch, using placeholder names: {e}")
            names = [placeholder_name(cluster) for cluster in pending]
            ai_named = False

        for cluster, name in zip(pending, names):
            final = deduplicate_name(name, cluster, used)
            cluster.name = final
            used.add(final.casefold())
            if ai_named and cache is not None:
                cache.set(cluster.key, final)

        logger.log_operation("labeler.name_clusters", "success" if ai_named else "degraded", {
            "clusters": len(clusters),
            "cached": len(clusters) - len(pending),
            "named": len(pending)
        })
        return clusters
