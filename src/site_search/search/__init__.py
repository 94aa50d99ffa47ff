"""
Full-text search core.

This package provides a pure-Python lexical search stack:
- analyzers: Tokenizer, lowercase/length/stop-word filters
- ngrams, fuzzy: Character n-grams and Jaccard fuzzy expansion
- storage, sqlite_storage, file_storage: Index media behind one contract
- indexer: Document indexing with per-document locking
- query_parser: Query syntax (phrases, exclusions, filters, wildcards, boosts)
- scorer, stats: BM25 with title, exact-match and phrase boosts
- engine: Search and autocomplete
- highlighter: Highlighting and snippets
"""
