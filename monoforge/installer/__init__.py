"""Installation-orchestration core.

- **managers**: recycler, purge, approved-packages and setup checks
- **store**: persisted flag files and approved-package lists
- **shrinkwrap**: committed lockfile parsers
- **execution**: package-manager strategies, install orchestrator, version resolver
"""
