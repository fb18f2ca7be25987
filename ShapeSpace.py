import numpy as np
from skimage import transform

################### shape ###################
# shapes are (landmark_num, 2) arrays of (x, y); rects are (4, 2) arrays of
# corners ordered top-left, top-right, bottom-left, bottom-right

def AsShape(shape):
    shape=np.asarray(shape, dtype=np.float64)
    if shape.ndim!=2 or shape.shape[1]!=2 or shape.shape[0]==0:
        raise ValueError('shape must be a non-empty (n, 2) array, got %s' % (shape.shape,))
    return shape

# make the mean shape as (0,0)
def CenterShape(shape):
    cshape=shape.copy()
    cshape-=cshape.mean(0)
    return cshape

def MeanShape(rshapes):
    return np.mean(np.asarray(rshapes, dtype=np.float64), 0)

######################## rect ##########################
def CreateRect(x1, y1, x2, y2):
    return np.array([[x1, y1], [x2, y1], [x1, y2], [x2, y2]], dtype=np.float64)

# rect of the normalized shape space
def UnitRect():
    return CreateRect(-1., -1., 1., 1.)

# generate rect from shape
def ShapeBounds(shape):
    shape=AsShape(shape)
    x1, y1=np.min(shape, 0)
    x2, y2=np.max(shape, 0)
    return CreateRect(x1, y1, x2, y2)

# scale rect corners, e.g. to follow an image resized on load
def ScaleRect(rect, scale):
    return np.asarray(rect, dtype=np.float64)*scale

# fraction of landmarks inside the axis aligned extent of rect
def RectShapeOverlap(rect, shape):
    rect=np.asarray(rect, dtype=np.float64)
    shape=AsShape(shape)
    lo=rect.min(0)
    hi=rect.max(0)
    inside=np.all((shape>=lo) & (shape<=hi), 1)
    return np.count_nonzero(inside)/float(len(shape))

################### similarity ###################
# least squares similarity (rotation, uniform scale, translation) mapping src onto dst
def EstimateSimilarity(src, dst):
    src=AsShape(src)
    dst=AsShape(dst)
    if src.shape!=dst.shape:
        raise ValueError('cannot align shapes of %s and %s landmarks' % (src.shape, dst.shape))
    csrc=CenterShape(src)
    cdst=CenterShape(dst)
    # a single landmark or a collapsed shape has no rotation or scale
    if len(src)<2 or not np.any(csrc) or not np.any(cdst):
        return transform.SimilarityTransform(translation=dst.mean(0)-src.mean(0))
    return transform.estimate_transform('similarity', src, dst)

# 2x2 rotation and scale part of a similarity
def LinearPart(sim):
    return sim.params[:2, :2]

# transform from the normalized shape space to the image space of rect
def RectTransform(rect):
    return EstimateSimilarity(UnitRect(), rect)

# transform point to the normalized space of rect
def Shape2Relative(shape, rect):
    return RectTransform(rect).inverse(AsShape(shape))

# transform to absolute coord
def Shape2Absolute(rshape, rect):
    return RectTransform(rect)(AsShape(rshape))
