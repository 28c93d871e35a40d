"""
Client-side map loading.

A `MapSession` turns raw move/zoom events into debounced, gated fetches and merges
each batch into the marker layer by entity id. Background ingestion runs on a
separate, longer timer and only ever asks for a forced reload.
"""
