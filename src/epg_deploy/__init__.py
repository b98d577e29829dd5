"""epg-deploy — environment-driven process topology for an EPG grabber container.

Reads the container environment once, decides how many grab jobs to run,
builds their command lines, and (for several sites) keeps a cached
channels.xml merged from the per-site ``*.channels.xml`` fragments.
"""

__version__ = "0.3.0"
