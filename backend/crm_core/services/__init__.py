"""Write-path services over a SQLAlchemy Session."""
