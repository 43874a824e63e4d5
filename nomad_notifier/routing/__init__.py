"""Notification routing — fans entity snapshots out to every enabled sink.

Sinks are chat channels (Slack, Discord) that can post a message and edit
it later.  Each sink tracks, per entity, the handle of the message that
announced it, so repeated snapshots of the same deployment or allocation
edit one message instead of flooding the channel.

The NotificationDispatcher calls every sink for every snapshot.  One
sink's outage never hides events from the others.
"""
