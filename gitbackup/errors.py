"""
Exception hierarchy for repository backups

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""


class BackupError(Exception):
    """Base class for every error raised while backing up a target"""


class ConfigurationError(BackupError):
    """Invalid or incomplete configuration"""


class UnrecognizedSourceError(ConfigurationError):
    def __init__(self, source: str):
        self.source = source
        super().__init__(f'"{source}" is not a recognized source type')


class TransportError(BackupError):
    """The listing request could not be completed"""


class ParseError(BackupError):
    """The listing response does not have the shape the provider promises"""


class SyncError(BackupError):
    """A single repository could not be mirrored"""
