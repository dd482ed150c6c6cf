# Ideas taxonomy: entity schema, datastore access and list-page status filters
#
# Components:
#   schema.py      - Data model (Idea, Story, Sprint, Update, Figure, Material) and status vocabularies
#   store.py       - SQLite persistence layer
#   rest_store.py  - PostgREST-backed persistence layer
#   config.py      - YAML/env configuration and store selection
#   auth.py        - Operator sign-in / sign-out for the admin area
#   dom.py         - Minimal document model parsed from rendered pages
#   filters.py     - Status filter engine (client-side semantics)
#   importer.py    - Markdown + YAML front matter migration
