"""Destination sender implementations.

Each module implements one destination protocol. New protocols are added
as a module here plus one registration in the sender registry.
"""

from courier.framework.alerts.channels.github import GithubSender
from courier.framework.alerts.channels.jira import JiraSender
from courier.framework.alerts.channels.msteams import MsTeamsSender
from courier.framework.alerts.channels.opsgenie import OpsgenieSender
from courier.framework.alerts.channels.pagerduty import PagerDutySender
from courier.framework.alerts.channels.queue import QueueSender, RedisSender
from courier.framework.alerts.channels.slack import SlackSender
from courier.framework.alerts.channels.topic import TopicSender
from courier.framework.alerts.channels.webhook import WebhookSender

__all__ = [
    "GithubSender",
    "JiraSender",
    "MsTeamsSender",
    "OpsgenieSender",
    "PagerDutySender",
    "QueueSender",
    "RedisSender",
    "SlackSender",
    "TopicSender",
    "WebhookSender",
]
