# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional

import kopf


class MemberError(Exception):
    """
    An instruction sent to a cluster member failed.
    """

    def __init__(self, member: str, msg: str, code: Optional[int] = None):
        super().__init__(f"{member}: {msg}")
        self.member = member
        self.code = code


class MemberUnreachable(MemberError):
    pass


class MemberTimeout(MemberError):
    pass


class StatusConflict(kopf.TemporaryError):
    """
    The status was written by someone else since it was read.
    """

    def __init__(self, name: str, resource_version: Optional[str]):
        super().__init__(
            f"{name}: status changed since resourceVersion={resource_version}, retrying", delay=2)
        self.resource_version = resource_version
