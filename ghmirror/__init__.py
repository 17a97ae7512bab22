"""Mirror the GitHub API into MongoDB and republish stored items onto RabbitMQ."""

__version__ = "0.3.0"
