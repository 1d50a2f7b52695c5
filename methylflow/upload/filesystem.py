"""Extract files from processing run into output directory, organized by origin and sample.
"""
import datetime
import os
import shutil

from methylflow import utils
from methylflow.log import logger
from methylflow.pipeline import datadict as dd
from methylflow.pipeline.stage import sample_label
from methylflow.pipeline.unit import (PRIMARY, METHYLATED_CONTROL, UNMETHYLATED_CONTROL,
                                      NO_ORIGIN)

# output directory for every origin tag
PUBLISH_DIRS = {
    PRIMARY: "methylation",
    METHYLATED_CONTROL: os.path.join("controls", "methylated"),
    UNMETHYLATED_CONTROL: os.path.join("controls", "unmethylated"),
    NO_ORIGIN: "qc",
}

def get_storage_dir(unit, config):
    storage_dir = os.path.join(dd.get_outdir(config), PUBLISH_DIRS[unit.origin])
    if unit.sample:
        storage_dir = os.path.join(storage_dir, sample_label(unit))
    return storage_dir

def publish(unit, config):
    """Copy the files of a unit into the output directory, returning the published unit.
    """
    storage_dir = utils.safe_makedir(get_storage_dir(unit, config))
    out_files = []
    for fname in unit.files:
        out_file = os.path.join(storage_dir, os.path.basename(fname))
        if not up_to_date(out_file, fname):
            logger.info("Storing in local filesystem: %s" % out_file)
            if os.path.isdir(fname):
                if os.path.exists(out_file):
                    shutil.rmtree(out_file)
                shutil.copytree(fname, out_file)
            else:
                shutil.copy(fname, out_file)
        out_files.append(out_file)
    return unit.evolve(files=tuple(out_files))

def get_file_timestamp(f):
    return datetime.datetime.fromtimestamp(os.path.getmtime(f))

def up_to_date(new, orig):
    if os.path.isdir(orig):
        return os.path.exists(new) and get_file_timestamp(new) >= get_file_timestamp(orig)
    return utils.file_exists(new) and get_file_timestamp(new) >= get_file_timestamp(orig)
