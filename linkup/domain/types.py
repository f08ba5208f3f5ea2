from typing import NewType

GroupId = NewType("GroupId", str)
MemberId = NewType("MemberId", str)
ConversationHandle = NewType("ConversationHandle", str)
