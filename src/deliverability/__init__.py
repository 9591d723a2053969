"""
Deliverability core: quota enforcement, suppression and bounce-driven retries
for the SMS and email notification channels.
"""
