"""Story ingestion pipeline components.

Stages, in order:
- Trigger Resolver (`trigger`)
- Story Appender (`appender`)
- Change Committer (`committer`)

`runner.run_pipeline` chains them for a single event.
"""
