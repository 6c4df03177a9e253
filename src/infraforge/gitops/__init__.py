"""Git publishing, Git hosting API and chart sources."""
