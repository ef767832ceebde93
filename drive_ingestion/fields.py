"""Field names of the normalized file record."""

FILE = "file"

FILE_NAME = "name"
FILE_DESCRIPTION = "description"
FILE_CONTENTS = "contents"
FILE_MIMETYPE = "mimetype"
FILE_FILETYPE = "filetype"
FILE_SIZE = "size"
FILE_URL = "url"
FILE_ROLES = "roles"
FILE_ID = "id"
FILE_KIND = "kind"
FILE_VERSION = "version"

# links
FILE_THUMBNAIL_LINK = "thumbnail_link"
FILE_WEB_VIEW_LINK = "web_view_link"
FILE_WEB_CONTENT_LINK = "web_content_link"
FILE_ICON_LINK = "icon_link"
FILE_EXPORT_LINKS = "export_links"

# timestamps
FILE_CREATED_TIME = "created_time"
FILE_MODIFIED_TIME = "modified_time"
FILE_VIEWED_BY_ME_TIME = "viewed_by_me_time"
FILE_MODIFIED_BY_ME_TIME = "modified_by_me_time"
FILE_TRASHED_TIME = "trashed_time"

# people
FILE_OWNERS = "owners"
FILE_LAST_MODIFYING_USER = "last_modifying_user"
FILE_TRASHING_USER = "trashing_user"

# passthrough metadata, keyed by the Drive API property they are read from
PASSTHROUGH_FIELDS = {
    "class_info": "classInfo",
    "content_hints": "contentHints",
    "capabilities": "capabilities",
    "app_properties": "appProperties",
    "copy_requires_writer_permission": "copyRequiresWriterPermission",
    "explicitly_trashed": "explicitlyTrashed",
    "file_extension": "fileExtension",
    "folder_color_rgb": "folderColorRgb",
    "full_file_extension": "fullFileExtension",
    "has_augmented_permissions": "hasAugmentedPermissions",
    "has_thumbnail": "hasThumbnail",
    "head_revision_id": "headRevisionId",
    "image_media_metadata": "imageMediaMetadata",
    "is_app_authorized": "isAppAuthorized",
    FILE_KIND: "kind",
    "md5_checksum": "md5Checksum",
    "modified_by_me": "modifiedByMe",
    "original_filename": "originalFilename",
    "owned_by_me": "ownedByMe",
    "parents": "parents",
    "quota_bytes_used": "quotaBytesUsed",
    "shared": "shared",
    "drive_id": "driveId",
    "thumbnail_version": "thumbnailVersion",
    "trashed": "trashed",
    FILE_VERSION: "version",
    "video_media_metadata": "videoMediaMetadata",
    "viewed_by_me": "viewedByMe",
    "viewers_can_copy_content": "viewersCanCopyContent",
    "writers_can_share": "writersCanShare",
}
