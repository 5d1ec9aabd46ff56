"""
Destination Structure Registry

Canonical layout of every table the porter format can carry: table name ->
ordered column name -> declared type. Columns are always exported in the order
they are first seen in the source row, but types and the set of known columns
come from here.

The registry is read-only during an export. Additional tables or columns can
be supplied from a YAML file shaped like:

    Poll:
      PollID: int
      Name: varchar(255)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..utils import load_yaml_file

logger = logging.getLogger(__name__)

DEFAULT_STRING_TYPE = "varchar(255)"

STRUCTURES: dict[str, dict[str, str]] = {
    'Activity': {
        'ActivityID': 'int',
        'ActivityTypeID': 'int',
        'NotifyUserID': 'int',
        'ActivityUserID': 'int',
        'RegardingUserID': 'int',
        'Photo': 'varchar(255)',
        'HeadlineFormat': 'varchar(255)',
        'Story': 'text',
        'Format': 'varchar(10)',
        'Route': 'varchar(255)',
        'RecordType': 'varchar(20)',
        'RecordID': 'int',
        'InsertUserID': 'int',
        'DateInserted': 'datetime',
        'InsertIPAddress': 'varchar(39)',
        'DateUpdated': 'datetime',
        'Notified': 'tinyint(1)',
        'Emailed': 'tinyint(1)',
        'Data': 'text',
    },
    'Category': {
        'CategoryID': 'int',
        'Name': 'varchar(255)',
        'UrlCode': 'varchar(255)',
        'Description': 'varchar(500)',
        'ParentCategoryID': 'int',
        'DateInserted': 'datetime',
        'InsertUserID': 'int',
        'DateUpdated': 'datetime',
        'UpdateUserID': 'int',
        'Sort': 'int',
        'Archived': 'tinyint(1)',
    },
    'Comment': {
        'CommentID': 'int',
        'DiscussionID': 'int',
        'DateInserted': 'datetime',
        'InsertUserID': 'int',
        'InsertIPAddress': 'varchar(39)',
        'UpdateUserID': 'int',
        'UpdateIPAddress': 'varchar(39)',
        'DateUpdated': 'datetime',
        'Format': 'varchar(20)',
        'Body': 'text',
        'Score': 'float',
    },
    'Conversation': {
        'ConversationID': 'int',
        'Subject': 'varchar(255)',
        'Contributors': 'varchar(255)',
        'FirstMessageID': 'int',
        'InsertUserID': 'int',
        'DateInserted': 'datetime',
        'InsertIPAddress': 'varchar(39)',
        'UpdateUserID': 'int',
        'DateUpdated': 'datetime',
        'UpdateIPAddress': 'varchar(39)',
    },
    'ConversationMessage': {
        'MessageID': 'int',
        'ConversationID': 'int',
        'Body': 'text',
        'Format': 'varchar(20)',
        'InsertUserID': 'int',
        'DateInserted': 'datetime',
        'InsertIPAddress': 'varchar(39)',
    },
    'Discussion': {
        'DiscussionID': 'int',
        'Type': 'varchar(10)',
        'ForeignID': 'varchar(30)',
        'CategoryID': 'int',
        'InsertUserID': 'int',
        'UpdateUserID': 'int',
        'Name': 'varchar(100)',
        'Body': 'text',
        'Format': 'varchar(20)',
        'Tags': 'varchar(255)',
        'CountComments': 'int',
        'CountViews': 'int',
        'Closed': 'tinyint(1)',
        'Announce': 'tinyint(1)',
        'Sink': 'tinyint(1)',
        'DateInserted': 'datetime',
        'DateUpdated': 'datetime',
        'InsertIPAddress': 'varchar(39)',
        'UpdateIPAddress': 'varchar(39)',
        'DateLastComment': 'datetime',
        'LastCommentUserID': 'int',
        'Score': 'float',
        'Attributes': 'text',
    },
    'Media': {
        'MediaID': 'int',
        'Name': 'varchar(255)',
        'Type': 'varchar(128)',
        'Size': 'int',
        'ImageWidth': 'smallint',
        'ImageHeight': 'smallint',
        'StorageMethod': 'varchar(24)',
        'Path': 'varchar(255)',
        'ThumbWidth': 'smallint',
        'ThumbHeight': 'smallint',
        'ThumbPath': 'varchar(255)',
        'InsertUserID': 'int',
        'DateInserted': 'datetime',
        'ForeignID': 'int',
        'ForeignTable': 'varchar(24)',
    },
    'Role': {
        'RoleID': 'int',
        'Name': 'varchar(100)',
        'Description': 'varchar(500)',
        'CanSession': 'tinyint(1)',
        'Sort': 'int',
    },
    'Tag': {
        'TagID': 'int',
        'Name': 'varchar(255)',
        'FullName': 'varchar(255)',
        'InsertUserID': 'int',
        'DateInserted': 'datetime',
    },
    'TagDiscussion': {
        'TagID': 'int',
        'DiscussionID': 'int',
        'CategoryID': 'int',
        'DateInserted': 'datetime',
    },
    'User': {
        'UserID': 'int',
        'Name': 'varchar(50)',
        'Email': 'varchar(200)',
        'Password': 'varbinary(100)',
        'HashMethod': 'varchar(10)',
        'Photo': 'varchar(255)',
        'Title': 'varchar(100)',
        'Location': 'varchar(100)',
        'About': 'text',
        'Verified': 'tinyint(1)',
        'Banned': 'tinyint(1)',
        'Admin': 'tinyint(1)',
        'Deleted': 'tinyint(1)',
        'DateInserted': 'datetime',
        'DateLastActive': 'datetime',
        'DateUpdated': 'datetime',
        'DateOfBirth': 'datetime',
        'ShowEmail': 'tinyint(1)',
        'Gender': 'varchar(1)',
        'InsertIPAddress': 'varchar(39)',
        'LastIPAddress': 'varchar(39)',
        'CountDiscussions': 'int',
        'CountComments': 'int',
    },
    'UserConversation': {
        'UserID': 'int',
        'ConversationID': 'int',
        'CountReadMessages': 'int',
        'LastMessageID': 'int',
        'DateLastViewed': 'datetime',
        'Deleted': 'tinyint(1)',
    },
    'UserDiscussion': {
        'UserID': 'int',
        'DiscussionID': 'int',
        'Bookmarked': 'tinyint(1)',
        'DateLastViewed': 'datetime',
        'CountComments': 'int',
        'Dismissed': 'tinyint(1)',
    },
    'UserMeta': {
        'UserID': 'int',
        'Name': 'varchar(255)',
        'Value': 'text',
    },
    'UserRole': {
        'UserID': 'int',
        'RoleID': 'int',
    },
}


class StructureRegistry:
    """Registry of destination table structures for one export run."""

    def __init__(self, structures: Optional[dict[str, dict[str, str]]] = None):
        source = STRUCTURES if structures is None else structures
        # Copy so callers cannot change the layout mid-run
        self._structures = {table: dict(columns) for table, columns in source.items()}

    @classmethod
    def from_yaml(cls, file_path: Path, base: Optional[dict[str, dict[str, str]]] = None) -> StructureRegistry:
        """
        Build a registry from the default structures extended by a YAML file.

        Columns of an existing table are appended (or retyped) in file order;
        unknown tables are added.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a mapping of table -> column -> type
        """
        extra = load_yaml_file(Path(file_path)) or {}
        if not isinstance(extra, dict):
            raise ValueError(f"Structures file must map table names to columns: {file_path}")

        merged = {table: dict(columns) for table, columns in (STRUCTURES if base is None else base).items()}
        for table, columns in extra.items():
            if not isinstance(columns, dict):
                raise ValueError(f"Columns for {table} must be a mapping of column -> type")
            merged.setdefault(table, {}).update({str(col): str(col_type) for col, col_type in columns.items()})

        logger.info(f"Loaded {len(extra)} structure definition(s) from {file_path}")
        return cls(merged)

    def get(self, table: str) -> Optional[dict[str, str]]:
        """
        Get the ordered column -> type layout of a destination table.

        Returns:
            A copy of the table layout, or None for unknown tables
        """
        columns = self._structures.get(table)
        return dict(columns) if columns is not None else None

    def __contains__(self, table: str) -> bool:
        return table in self._structures

    def tables(self) -> list[str]:
        return list(self._structures)
