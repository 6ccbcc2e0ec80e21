"""Vector search over the documentation knowledge base (pgvector RPC)."""

from typing import Any


class SupabaseDocStore:
    """Document-store collaborator backed by the ``match_doc_chunks`` RPC.

    Index construction and the ANN algorithm live in the database.
    """

    def __init__(self, supabase: Any, rpc_name: str = "match_doc_chunks"):
        self._supabase = supabase
        self._rpc_name = rpc_name

    def search(
        self,
        vector: list[float],
        top_k: int,
        topic_filter: str | None = None,
        provider_filter: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Nearest chunks to ``vector``, most similar first.

        Raises:
            Exception: If the RPC call fails
        """
        response = self._supabase.rpc(
            self._rpc_name,
            {
                "query_embedding": vector,
                "top_k": top_k,
                "topic_bias": topic_filter,
                "provider_bias": provider_filter,
            },
        ).execute()
        return response.data or []
