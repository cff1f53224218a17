"""
Indexing and query engine package.

- analyzer: workflow document analysis into indexable records
- validation: structural checks for workflow payloads
- store: SQLite record store with an FTS5 full-text shadow
- indexer: incremental corpus-to-store pipeline
- query: free-text and filtered search
"""
