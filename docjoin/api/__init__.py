"""HTTP routes for previews, exports, parsing and projects."""
