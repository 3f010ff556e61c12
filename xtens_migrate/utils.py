"""
utils.py
Helpers shared by the migration scripts: metadata field names, source file
discovery and sample codes taken from file names.
"""

import os
import re
import logging

from . import settings
from .exceptions import MigrationError

METADATA_FIELD_NAME_NOT_ALLOWED_CHARSET = re.compile(r'[^A-Za-z_$0-9:]')


def format_metadata_field_name(name):
    """
     turn a free-text label into a metadata field name
     e.g. 'Centralization (legacy) Threshold' -> 'centralization__legacy__threshold'
    """
    # field names cannot start with a digit
    if re.match(r'[0-9]', name):
        name = '$' + name
    return METADATA_FIELD_NAME_NOT_ALLOWED_CHARSET.sub('_', name.lower())


def _extension_matches(file_path, ext):
    if not ext:
        return True
    file_ext = os.path.splitext(file_path)[1]
    if isinstance(ext, (list, tuple, set)):
        return file_ext in ext
    return file_ext == ext


def get_files_in_folder(folder, ext=None, is_deep=False, logger=None):
    """
     list the files in folder, in directory listing order
     ext: an extension ('.xlsx') or a list of extensions; matched case-sensitively
     is_deep: descend into subfolders; the extension filter applies there too
    """
    logger = logger or logging.getLogger(__name__)
    if settings.SOURCE_FILES_PATH_PREFIX:
        folder = settings.SOURCE_FILES_PATH_PREFIX + folder

    def scan(current_folder):
        res = []
        for file_name in os.listdir(current_folder):
            file_path = os.path.join(current_folder, file_name)
            if os.path.isdir(file_path):
                if is_deep:
                    res.extend(scan(file_path))
            elif _extension_matches(file_path, ext):
                logger.debug('Pushing file: [' + file_path + ']')
                res.append(file_path)
        return res

    try:
        files = scan(folder)
        logger.info('get_files_in_folder: [' + str(folder) + '] ' + str(len(files)) + ' files')
        return files
    except OSError as err:
        raise MigrationError("** Error: get_files_in_folder Failed (" + str(err) + ")") from err


def get_sample_code(file_path):
    """
     sample (arrival/BIT) code is the file name up to the first dot
    """
    file_name = os.path.basename(file_path)
    return file_name.split('.')[0]
