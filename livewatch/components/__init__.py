"""Template engine, pipeline launcher, live poller and notifier."""
