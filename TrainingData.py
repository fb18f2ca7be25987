from collections import namedtuple

import cv2
import numpy as np
from sklearn.model_selection import train_test_split

from ShapeSpace import AsShape, ShapeBounds, ScaleRect, RectShapeOverlap, Shape2Relative
import Params

# images, ground truth shapes and rects are index aligned
Database=namedtuple('Database', ['images', 'shapes', 'rects'])
# idx points into the database, estimates are owned (M, landmark_num, 2) normalized shapes
Samples=namedtuple('Samples', ['idx', 'estimates'])

######################## database ##########################
def AsImage(img):
    img=np.asarray(img)
    if img.ndim==3:
        img=cv2.cvtColor(img.astype(np.float32), cv2.COLOR_BGR2GRAY)
    if img.ndim!=2 or img.size==0:
        raise ValueError('image must be a non-empty grayscale or BGR array, got %s' % (img.shape,))
    return np.ascontiguousarray(img, dtype=np.float32)

# check loader output, derive tight rects when missing, rescale rects of resized images
def LoadDatabase(images, shapes, rects=None, scalings=None):
    if len(images)==0:
        raise ValueError('database is empty')
    if len(images)!=len(shapes):
        raise ValueError('got %d images but %d shapes' % (len(images), len(shapes)))
    shapes=[AsShape(shape) for shape in shapes]
    landmark_num=len(shapes[0])
    for i, shape in enumerate(shapes):
        if len(shape)!=landmark_num:
            raise ValueError('shape %d has %d landmarks, expected %d' % (i, len(shape), landmark_num))
    if rects is None:
        rects=[ShapeBounds(shape) for shape in shapes]
    if len(rects)!=len(shapes):
        raise ValueError('got %d rects but %d shapes' % (len(rects), len(shapes)))
    rects=[np.asarray(rect, dtype=np.float64).reshape(4, 2) for rect in rects]
    if scalings is not None:
        if len(scalings)!=len(rects):
            raise ValueError('got %d scalings but %d rects' % (len(scalings), len(rects)))
        rects=[ScaleRect(rect, s) for rect, s in zip(rects, scalings)]
    imgs=[AsImage(img) for img in images]
    return Database(imgs, np.array(shapes), np.array(rects))

# choose the detected rect that contains the shape, fall back to the shape bounds
def ChooseRects(images, shapes, detections, min_overlap=0.3, match_detector=True):
    # tight bounds differ from detector rects, these values move them closer
    scale_to_detector=1.25
    tx_to_detector=-0.01
    ty_to_detector=-0.05

    rects=[]
    success=0
    for img, shape, faces in zip(images, shapes, detections):
        best_overlap=0.
        best_rect=None
        for face in faces:
            o=RectShapeOverlap(face, shape)
            if o>best_overlap:
                best_overlap=o
                best_rect=face
        if best_rect is None or best_overlap<min_overlap:
            rect=ShapeBounds(shape)
            if match_detector:
                center=rect.mean(0)
                rect=(rect-center)*scale_to_detector+center
                rect+=[tx_to_detector*img.shape[1], ty_to_detector*img.shape[0]]
        else:
            success+=1
            rect=np.asarray(best_rect, dtype=np.float64).reshape(4, 2)
        rects.append(rect)
    print('Detector successful on', success, '/', len(rects), 'shapes')
    return rects

# express every ground truth shape relative to its rect
def NormalizeShapes(shapes, rects):
    return np.array([Shape2Relative(shape, rects[i]) for i, shape in enumerate(shapes)])

######################## samples ##########################
def EmptySamples(landmark_num):
    return Samples(np.zeros(0, dtype=np.int64), np.zeros((0, landmark_num, 2)))

# distinct other shapes while they last, then start over with a new permutation
def PickOtherShapes(n, i, num, rng):
    others=np.delete(np.arange(n), i)
    if num<=0:
        return others[:0]
    rounds=-(-num//len(others))
    return np.concatenate([rng.permutation(others) for _ in range(rounds)])[:num]

# for every training shape choose $init_num other training shapes as initialization
def CreateSamplesRandomShapes(rshapes, init_num, rng, mean_shape=None):
    n=len(rshapes)
    if n==1:
        # no other shape to start from, the estimates equal the ground truth
        print('Warning: a single training shape gives zero residuals')
    idx=[]
    estimates=[]
    for i in range(n):
        inits=[]
        if mean_shape is not None:
            inits.append(mean_shape)
        if n>1:
            inits.extend(rshapes[PickOtherShapes(n, i, init_num-len(inits), rng)])
        while len(inits)<init_num:
            inits.append(rshapes[i])
        for init in inits:
            idx.append(i)
            estimates.append(np.array(init, dtype=np.float64))
    return Samples(np.array(idx, dtype=np.int64), np.array(estimates))

# initialize with random convex combinations of $combine_num training shapes
def CreateSamplesLinearCombinations(rshapes, init_num, rng, mean_shape=None, combine_num=Params.param_combine_num):
    n=len(rshapes)
    combine_num=max(1, min(combine_num, n))
    idx=[]
    estimates=[]
    for i in range(n):
        for j in range(init_num):
            if mean_shape is not None and j==0:
                init=np.array(mean_shape, dtype=np.float64)
            else:
                inds=rng.choice(n, combine_num, replace=False)
                weights=rng.dirichlet(np.ones(combine_num))
                init=np.tensordot(weights, rshapes[inds], axes=1)
            idx.append(i)
            estimates.append(init)
    return Samples(np.array(idx, dtype=np.int64), np.array(estimates))

BOOTSTRAP_STRATEGIES={
    'random': CreateSamplesRandomShapes,
    'linear': CreateSamplesLinearCombinations,
}

def CreateTrainingSamples(rshapes, rng, strategy=Params.param_bootstrap, init_num=Params.param_init_num, mean_shape=None):
    if strategy not in BOOTSTRAP_STRATEGIES:
        raise ValueError('unknown bootstrap strategy %r, expected one of %s' % (strategy, sorted(BOOTSTRAP_STRATEGIES)))
    if init_num<1:
        raise ValueError('init_num must be positive, got %r' % init_num)
    samples=BOOTSTRAP_STRATEGIES[strategy](np.asarray(rshapes, dtype=np.float64), init_num, rng, mean_shape=mean_shape)
    assert len(samples.idx)==len(rshapes)*init_num
    return samples

# split samples into disjoint train and validate sets
def PartitionSamples(samples, rng, validate_fraction=Params.param_validate_fraction):
    n=len(samples.idx)
    validate_num=int(round(min(max(validate_fraction, 0.), 1.)*n))
    # keep at least one training sample
    validate_num=min(validate_num, n-1)
    if validate_num<=0:
        return samples, EmptySamples(samples.estimates.shape[1])
    train_inds, validate_inds=train_test_split(np.arange(n), test_size=validate_num, random_state=rng)
    train=Samples(samples.idx[train_inds], samples.estimates[train_inds].copy())
    validate=Samples(samples.idx[validate_inds], samples.estimates[validate_inds].copy())
    return train, validate
